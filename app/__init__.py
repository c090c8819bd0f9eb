import os

from flask import Flask
from supabase import create_client

from .analytics.routes import analytics_bp
from .analytics.service import DEFAULT_LAUNDRY_DEFECT_TYPE, AnalyticsService
from .db import SupabaseRecordProvider


def create_app():
    app = Flask(__name__)
    app.secret_key = os.environ["SECRET_KEY"]

    supabase = create_client(
        os.environ["SUPABASE_URL"],
        os.environ["SUPABASE_SERVICE_KEY"],
    )
    app.config["SUPABASE"] = supabase
    app.config["SUPABASE_URL"] = os.environ["SUPABASE_URL"]
    app.config["LAUNDRY_DEFECT_TYPE"] = (
        os.environ.get("LAUNDRY_DEFECT_TYPE") or DEFAULT_LAUNDRY_DEFECT_TYPE
    )

    try:
        page_size = int(os.environ.get("ANALYTICS_PAGE_SIZE", 1000))
    except ValueError:
        app.logger.warning("Ignoring invalid ANALYTICS_PAGE_SIZE; using 1000")
        page_size = 1000
    app.config["ANALYTICS_PAGE_SIZE"] = page_size if page_size > 0 else 1000

    app.config["ANALYTICS_SERVICE"] = AnalyticsService(
        SupabaseRecordProvider(app),
        laundry_defect_type=app.config["LAUNDRY_DEFECT_TYPE"],
    )

    app.register_blueprint(analytics_bp)

    return app

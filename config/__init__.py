"""Configuration helpers for the garment defect analytics service."""

# Runtime configuration that can be customised without touching the
# analytics code, such as the Supabase table and column names.

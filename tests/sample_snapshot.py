"""Shared defect snapshot used by the service, route and API tests."""

import copy

LAUNDRY = {"id": "t1", "name": "laundry Defects"}
STITCHING = {"id": "t2", "name": "Stitching"}

ORDER_ONE = {
    "id": "o1",
    "orderNo": "PO-1",
    "orderQty": 100,
    "keyNo": "K1",
    "fabric": {
        "id": "f1",
        "name": "Denim",
        "code": "DN-01",
        "fabricCompositions": [
            {"value": 80, "compositionItem": {"id": "c1", "name": "Cotton"}},
            {"value": 20, "compositionItem": {"id": "c2", "name": "Polyester"}},
        ],
    },
    "style": {"id": "s1", "name": "Slim Jean", "styleNo": "SJ-1", "brand": {"id": "b1", "name": "Acme"}},
}

ORDER_TWO = {
    "id": "o2",
    "orderNo": "PO-2",
    "orderQty": 200,
    "keyNo": "K2",
    "fabric": {
        "id": "f2",
        "name": "Cotton Twill",
        "code": "CT-02",
        "fabricCompositions": [
            {"value": 100, "compositionItem": {"id": "c1", "name": "Cotton"}},
        ],
    },
    "style": {"id": "s2", "name": "Relaxed Chino", "styleNo": "RC-2", "brand": {"id": "b1", "name": "Acme"}},
}

WASH_RECIPES = [
    {
        "id": "r1",
        "orderId": "o1",
        "washType": "SMS",
        "washCode": "W1",
        "steps": [
            {
                "temp": 20,
                "liters": 40,
                "time": 10,
                "stepItems": [{"chemicalItemId": {"id": "ch1", "name": "Enzyme"}}],
            },
            {"temp": 95, "liters": 120, "time": 45},
        ],
        "recipeProcesses": [
            {"laundryProcessId": {"id": "p1", "name": "Stone Wash", "type": "Dry"}},
        ],
    },
    {
        "id": "r2",
        "orderId": "o2",
        "washType": "Production",
        "washCode": "W2",
        "steps": [
            {
                "temp": 40,
                "liters": 60,
                "time": 20,
                "stepItems": [{"chemicalItemId": {"id": "ch2", "name": "Bleach"}}],
            },
        ],
        "recipeProcesses": [
            {"laundryProcessId": {"id": "p2", "name": "Rinse", "type": "Wet"}},
        ],
    },
    {"id": "r3", "orderId": "o3", "washType": "SMS", "washCode": "W3", "steps": []},
]


def build_snapshot():
    """Four defects over two orders plus one orphan defect.

    Weighted totals: 7 defects, 5 of them laundry typed.
    """

    defects = [
        {
            "id": "d1",
            "orderId": ORDER_ONE,
            "defectType": LAUNDRY,
            "defectName": {"id": "n1", "name": "Colour Shading"},
            "defectPlace": {"id": "pl1", "name": "Front Panel"},
            "defectProcess": {"id": "pr1", "name": "Washing"},
            "productionLine": "Line 1",
            "severity": "High",
            "status": "Open",
            "detectedDate": "2024-03-05T10:00:00Z",
            "defectCount": 2,
        },
        {
            "id": "d2",
            "orderId": ORDER_ONE,
            "defectType": STITCHING,
            "defectName": {"id": "n2", "name": "Skipped Stitch"},
            "productionLine": "Line 1",
            "severity": "Low",
            "status": "Resolved",
            "detectedDate": "2024-03-06T08:00:00Z",
            "resolvedDate": "2024-03-06T20:00:00Z",
            "defectCount": 1,
        },
        {
            "id": "d3",
            "orderId": ORDER_TWO,
            "defectType": LAUNDRY,
            "defectName": {"id": "n1", "name": "Colour Shading"},
            "productionLine": "Line 2",
            "severity": "Medium",
            "status": "Open",
            "detectedDate": "2024-03-10",
            "defectCount": 3,
        },
        {
            "id": "d4",
            "defectType": STITCHING,
            "severity": "High",
            "status": "In Progress",
            "detectedDate": "2024-04-02",
        },
    ]
    return {
        "defects": copy.deepcopy(defects),
        "orders": [
            {"id": "o1", "orderNo": "PO-1", "orderQty": 100},
            {"id": "o2", "orderNo": "PO-2", "orderQty": 200},
        ],
        "washRecipes": copy.deepcopy(WASH_RECIPES),
        "defectTypes": [LAUNDRY, STITCHING],
    }

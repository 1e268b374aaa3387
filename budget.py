"""
Budget split recommendations and cost-saving tips. Static tables, in AED.
"""
from typing import Any, Dict, List, Optional

CURRENCY = "AED"

BUDGET_SPLITS = {
    "wedding": {
        "venue": 30, "catering": 25, "photography": 15, "decoration": 10,
        "entertainment": 10, "flowers": 5, "other": 5,
    },
    "corporate": {
        "venue": 35, "catering": 30, "audio_visual": 15, "decoration": 10,
        "transportation": 5, "other": 5,
    },
    "birthday": {
        "venue": 25, "catering": 30, "decoration": 20, "entertainment": 15,
        "photography": 5, "other": 5,
    },
    "conference": {
        "venue": 40, "catering": 25, "audio_visual": 20, "decoration": 10,
        "transportation": 3, "other": 2,
    },
    "default": {
        "venue": 30, "catering": 25, "decoration": 15, "entertainment": 10,
        "photography": 10, "other": 10,
    },
}

CATEGORY_DESCRIPTIONS = {
    "venue": "Location rental, setup fees, and basic facilities",
    "catering": "Food, beverages, service staff, and equipment",
    "photography": "Professional photographer, videographer, and editing",
    "decoration": "Flowers, lighting, centerpieces, and themed decorations",
    "entertainment": "DJ, live music, performers, or entertainment systems",
    "audio_visual": "Sound systems, microphones, projectors, and lighting",
    "transportation": "Guest transportation, parking, and logistics",
    "flowers": "Bouquets, arrangements, and floral decorations",
    "security": "Event security personnel and crowd management",
    "other": "Miscellaneous expenses and contingency fund",
}

GENERAL_TIPS = [
    "Book venues during off-peak days (Sunday-Thursday) for better rates",
    "Consider buffet-style catering instead of plated meals to reduce costs",
    "Use local vendors to save on transportation and logistics",
    "Book vendors 2-3 months in advance for early bird discounts",
    "Mix fresh flowers with artificial ones for decoration savings",
]

LOW_BUDGET_TIPS = [
    "Consider home venues or community halls for significant savings",
    "Ask friends/family to help with photography and videography",
    "Use DIY decorations and centerpieces",
]

EVENT_TYPE_TIPS = {
    "wedding": [
        "Consider weekday weddings for 20-30% venue discounts",
        "Limit guest list to close family and friends",
        "Use seasonal flowers and local suppliers",
    ],
    "corporate": [
        "Partner with other companies for shared event costs",
        "Use company facilities or partner venues",
        "Focus budget on networking opportunities and quality catering",
    ],
}

LOW_BUDGET_PER_PERSON = 100
MAX_TIPS = 5


def category_description(category: str) -> str:
    return CATEGORY_DESCRIPTIONS.get(category, "Additional event-related expenses")


def cost_saving_tips(event_type: str, attendees: Optional[int], budget: float) -> List[str]:
    # Event-type and low-budget tips come before the general ones.
    tips = list(EVENT_TYPE_TIPS.get(event_type, []))
    if attendees and budget / attendees < LOW_BUDGET_PER_PERSON:
        tips.extend(LOW_BUDGET_TIPS)
    tips.extend(GENERAL_TIPS)
    return tips[:MAX_TIPS]


def budget_recommendations(event_type: str, total_budget: float, attendees: Optional[int] = None) -> Dict[str, Any]:
    breakdown = BUDGET_SPLITS.get(event_type, BUDGET_SPLITS["default"])
    recommendations = [
        {
            "category": category.replace("_", " ").upper(),
            "percentage": percentage,
            "amount": round(total_budget * percentage / 100),
            "description": category_description(category),
        }
        for category, percentage in breakdown.items()
    ]
    return {
        "recommendations": recommendations,
        "cost_saving_tips": cost_saving_tips(event_type, attendees, total_budget),
        "total_budget": total_budget,
        "currency": CURRENCY,
    }

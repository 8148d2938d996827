"""BasketRec: menu item suggestions for restaurant carts.

This package mines "customers who bought X also bought Y" rules from completed
orders and blends them with personalized and AI-generated suggestions at
request time.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Rule mining, personalization, AI adapter and merge logic
"""

__version__ = "0.1.0"

"""
Shared API dependencies.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from groceries.database import SessionLocal
from groceries.services.llm_service import GroceryParser, create_grocery_parser

limiter = Limiter(key_func=get_remote_address)

# One parser per process: its category cache and usage window are shared by all requests
grocery_parser = create_grocery_parser(session_factory=SessionLocal)


def get_grocery_parser() -> GroceryParser:
    return grocery_parser

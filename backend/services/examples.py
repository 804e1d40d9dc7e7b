"""
Canned "try your luck" examples: a business paragraph with a ready schema and rows.

Loading one goes through the same commit path as a generated answer, without
calling the completion service.
"""
import logging
import random
from typing import Any, Dict, List, Optional

from backend.services.runtime import log_event
from backend.services.schema_model import SchemaDef
from backend.services.schema_store import SchemaStore

logger = logging.getLogger("examples")


def _f(name: str, type_: str, required: bool = True) -> Dict[str, Any]:
    return {"name": name, "type": type_, "required": required}


def _rel(source: str, source_field: str, target: str, target_field: str, cardinality: str = "N:1") -> Dict[str, Any]:
    return {
        "sourceTable": source,
        "sourceField": source_field,
        "targetTable": target,
        "targetField": target_field,
        "cardinality": cardinality,
    }


EXAMPLES: List[Dict[str, Any]] = [
    {
        "paragraph": (
            "An online library system where users can search for books, register, borrow books "
            "and return them. It must include Users, Books, Loans and Authors tables with the "
            "proper relationships between them."
        ),
        "schema": {
            "tables": [
                {"name": "Users", "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)"), _f("email", "VARCHAR(100)")]},
                {"name": "Authors", "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)")]},
                {
                    "name": "Books",
                    "fields": [
                        _f("id", "INT"),
                        _f("title", "VARCHAR(200)"),
                        _f("author_id", "INT"),
                        _f("available", "VARCHAR(5)"),
                    ],
                },
                {
                    "name": "Loans",
                    "fields": [
                        _f("id", "INT"),
                        _f("user_id", "INT"),
                        _f("book_id", "INT"),
                        _f("loan_date", "DATE"),
                        _f("return_date", "DATE", required=False),
                    ],
                },
            ],
            "relationships": [
                _rel("Books", "author_id", "Authors", "id"),
                _rel("Loans", "user_id", "Users", "id"),
                _rel("Loans", "book_id", "Books", "id"),
            ],
        },
        "data": {
            "Users": [
                {"id": 1, "name": "María López", "email": "maria.lopez@example.com"},
                {"id": 2, "name": "Carlos Pérez", "email": "carlos.perez@example.com"},
            ],
            "Authors": [
                {"id": 10, "name": "Gabriel García Márquez"},
                {"id": 11, "name": "Isabel Allende"},
            ],
            "Books": [
                {"id": 100, "title": "One Hundred Years of Solitude", "author_id": 10, "available": "yes"},
                {"id": 101, "title": "The House of the Spirits", "author_id": 11, "available": "no"},
            ],
            "Loans": [
                {"id": 1000, "user_id": 1, "book_id": 100, "loan_date": "2025-05-10", "return_date": None},
            ],
        },
    },
    {
        "paragraph": (
            "A hotel booking platform with Hotels, Rooms, Bookings and Customers tables. Each "
            "booking links a customer with a specific room for a range of dates."
        ),
        "schema": {
            "tables": [
                {"name": "Hotels", "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)"), _f("city", "VARCHAR(50)")]},
                {
                    "name": "Rooms",
                    "fields": [_f("id", "INT"), _f("hotel_id", "INT"), _f("number", "VARCHAR(10)"), _f("price", "REAL")],
                },
                {"name": "Customers", "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)"), _f("phone", "VARCHAR(20)", required=False)]},
                {
                    "name": "Bookings",
                    "fields": [
                        _f("id", "INT"),
                        _f("customer_id", "INT"),
                        _f("room_id", "INT"),
                        _f("check_in", "DATE"),
                        _f("check_out", "DATE"),
                    ],
                },
            ],
            "relationships": [
                _rel("Rooms", "hotel_id", "Hotels", "id"),
                _rel("Bookings", "customer_id", "Customers", "id"),
                _rel("Bookings", "room_id", "Rooms", "id"),
            ],
        },
        "data": {
            "Hotels": [
                {"id": 1, "name": "Hotel Sol", "city": "Lima"},
                {"id": 2, "name": "Mar Azul", "city": "Cancún"},
            ],
            "Rooms": [
                {"id": 10, "hotel_id": 1, "number": "101", "price": 85.5},
                {"id": 11, "hotel_id": 1, "number": "102", "price": 92.0},
                {"id": 20, "hotel_id": 2, "number": "A1", "price": 140.0},
            ],
            "Customers": [
                {"id": 100, "name": "Ana Torres", "phone": "555-0101"},
                {"id": 101, "name": "Luis Gómez", "phone": None},
            ],
            "Bookings": [
                {"id": 500, "customer_id": 100, "room_id": 10, "check_in": "2025-07-01", "check_out": "2025-07-04"},
                {"id": 501, "customer_id": 101, "room_id": 20, "check_in": "2025-08-12", "check_out": "2025-08-15"},
            ],
        },
    },
    {
        "paragraph": (
            "A sales system for a physical store with Products, Customers, Sales and SaleDetails "
            "tables. Each sale can include several products with quantity and price, and belongs "
            "to one customer."
        ),
        "schema": {
            "tables": [
                {
                    "name": "Products",
                    "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)"), _f("price", "REAL"), _f("status", "VARCHAR(20)")],
                },
                {"name": "Customers", "fields": [_f("id", "INT"), _f("name", "VARCHAR(100)"), _f("email", "VARCHAR(100)")]},
                {"name": "Sales", "fields": [_f("id", "INT"), _f("customer_id", "INT"), _f("sale_date", "DATE")]},
                {
                    "name": "SaleDetails",
                    "fields": [
                        _f("id", "INT"),
                        _f("sale_id", "INT"),
                        _f("product_id", "INT"),
                        _f("quantity", "INT"),
                        _f("unit_price", "REAL"),
                    ],
                },
            ],
            "relationships": [
                _rel("Sales", "customer_id", "Customers", "id"),
                _rel("SaleDetails", "sale_id", "Sales", "id"),
                _rel("SaleDetails", "product_id", "Products", "id"),
            ],
        },
        "data": {
            "Products": [
                {"id": 1, "name": "Notebook", "price": 3.5, "status": "active"},
                {"id": 2, "name": "Pen", "price": 1.2, "status": "active"},
                {"id": 3, "name": "Stapler", "price": 7.9, "status": "discontinued"},
            ],
            "Customers": [
                {"id": 1, "name": "Jorge Ruiz", "email": "jorge.ruiz@example.com"},
            ],
            "Sales": [
                {"id": 1, "customer_id": 1, "sale_date": "2025-03-02"},
            ],
            "SaleDetails": [
                {"id": 1, "sale_id": 1, "product_id": 1, "quantity": 2, "unit_price": 3.5},
                {"id": 2, "sale_id": 1, "product_id": 2, "quantity": 5, "unit_price": 1.2},
            ],
        },
    },
]


def load_example(store: SchemaStore, index: Optional[int] = None) -> Dict[str, Any]:
    """Replace the store contents with an example; a random one when ``index`` is None.

    Raises:
        IndexError: when ``index`` is out of range
    """
    if index is None:
        index = random.randrange(len(EXAMPLES))
    if index < 0 or index >= len(EXAMPLES):
        raise IndexError(f"example index {index} out of range (0..{len(EXAMPLES) - 1})")
    chosen = EXAMPLES[index]
    store.clear_all()
    store.apply_generated(SchemaDef.from_dict(chosen["schema"]), chosen["data"])
    log_event(logger, logging.INFO, "example_loaded", index=index, tables=len(chosen["schema"]["tables"]))
    return {"index": index, "paragraph": chosen["paragraph"]}

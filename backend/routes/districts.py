"""Read-only access to the city → district table."""
from __future__ import annotations

from flask import Blueprint, jsonify

from ..districts import CITY_DISTRICTS, as_json_table, get_districts, list_cities

districts_blueprint = Blueprint("districts", __name__)


@districts_blueprint.get("/api/districts")
def list_city_districts():
    return jsonify({"cities": list_cities(), "districts": as_json_table()})


@districts_blueprint.get("/api/districts/<city>")
def city_districts(city: str):
    if city not in CITY_DISTRICTS:
        return jsonify({"message": "查無此縣市"}), 404
    return jsonify({"city": city, "districts": get_districts(city)})

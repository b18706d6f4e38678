"""Raw material routes: batch listing, stock receipts and patches."""

from flask import Blueprint, jsonify

from . import get_services
from .requests import json_body
from .serializers import camelize

materials_bp = Blueprint("raw_materials", __name__, url_prefix="/api/raw-materials")


@materials_bp.route("", methods=["GET"])
def list_materials():
    return jsonify(camelize(get_services().ledger.list_materials()))


@materials_bp.route("", methods=["POST"])
def receive_stock():
    data = json_body()
    # The original client posts the received amount as inStock
    quantity = data.get("quantity", data.get("in_stock"))
    batch = get_services().ledger.receive_stock(data.get("name"), data.get("price"), quantity)
    return jsonify(camelize(batch)), 201


@materials_bp.route("/<int:material_id>", methods=["GET"])
def get_material(material_id: int):
    return jsonify(camelize(get_services().ledger.get_material(material_id)))


@materials_bp.route("/<int:material_id>", methods=["PUT", "PATCH"])
def update_material(material_id: int):
    fields = json_body()
    if "in_stock" in fields and "initial_stock" not in fields:
        fields["initial_stock"] = fields.pop("in_stock")
    batch = get_services().ledger.update_material(material_id, fields)
    return jsonify(camelize(batch))

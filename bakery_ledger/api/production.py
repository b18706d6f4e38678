"""Production routes: submissions, wage settlement and summaries."""

from flask import Blueprint, jsonify

from . import get_services
from .requests import date_arg, json_body
from .serializers import camelize

production_bp = Blueprint("production", __name__, url_prefix="/api/production")


@production_bp.route("/cakes", methods=["POST"])
def log_cake_production():
    data = json_body()
    log = get_services().production.log_cake_production(
        data.get("shift"), data.get("production"), log_date=data.get("date")
    )
    return jsonify({"message": "Production logged successfully", "production": camelize(log)}), 201


@production_bp.route("/materials", methods=["POST"])
def log_materials_usage():
    data = json_body()
    materials = data.get("raw_materials_used", data.get("materials_used"))
    log = get_services().production.log_materials_usage(
        data.get("shift"), materials, log_date=data.get("date")
    )
    body = {"message": "Materials usage logged successfully", "production": camelize(log)}
    return jsonify(body), 201


@production_bp.route("/logs", methods=["GET"])
def list_logs():
    start = date_arg("startDate", required=False)
    end = date_arg("endDate", required=False)
    return jsonify(camelize(get_services().production.list_logs(start, end)))


@production_bp.route("/logs/<int:log_id>", methods=["GET"])
def get_log(log_id: int):
    return jsonify(camelize(get_services().production.get_log(log_id)))


@production_bp.route("/pay-wages", methods=["POST"])
def pay_wages():
    data = json_body()
    day = date_arg("date", value=data.get("date"))
    result = get_services().wages.pay_wages(data.get("shift"), day)
    return jsonify({"message": "Wages marked as paid", **camelize(result)})


@production_bp.route("/daily-reset", methods=["POST"])
def daily_reset():
    result = get_services().wages.daily_reset()
    return jsonify({"message": "Daily reset completed", **camelize(result)})


@production_bp.route("/summary/daily", methods=["GET"])
def daily_summary():
    day = date_arg("date")
    return jsonify(camelize(get_services().summaries.daily_summary(day)))


@production_bp.route("/summary/range", methods=["GET"])
def range_summary():
    start = date_arg("startDate")
    end = date_arg("endDate")
    return jsonify(camelize(get_services().summaries.range_summary(start, end)))

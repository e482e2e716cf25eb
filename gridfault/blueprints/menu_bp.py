"""
Grid Fault Engine
Menu blueprint: navigation visibility for non-record features.

Endpoints:
    GET /api/v1/menu?path=<current path>                               visible menu entries
    GET /api/v1/menu/visible?required_role=<role>&path=<current path>  single check

Anonymous callers see nothing; no 401 is raised because the navigation
bar renders for logged-out visitors too.
"""

from flask import Blueprint, g, jsonify, request

from gridfault.services import fault_service
from gridfault.utils.errors import E, api_error

menu_bp = Blueprint("menu", __name__, url_prefix="/api/v1/menu")


@menu_bp.route("", methods=["GET"])
def visible_menu():
    path = request.args.get("path", "")
    items = fault_service.visible_menu(getattr(g, "current_user", None), path)
    return jsonify({"items": items, "path": path})


@menu_bp.route("/visible", methods=["GET"])
def menu_visible():
    required_role = request.args.get("required_role")
    if not required_role:
        return api_error(E.VALIDATION_REQUIRED, "required_role is required")
    path = request.args.get("path", "")
    visible = fault_service.menu_visible(getattr(g, "current_user", None), required_role, path)
    return jsonify({"visible": visible, "required_role": required_role, "path": path})

# Overview: Discriminated JSON result helpers shared by the API blueprints.

from flask import jsonify, current_app

from ..errors import CommerceError


def success(status: int = 200, **payload):
    return jsonify({"success": True, **payload}), status


def failure(exc: CommerceError):
    return jsonify({"success": False, "error": exc.to_dict()}), exc.http_status


def internal_error(message: str):
    """Log the active exception and answer a generic 500 without internals."""
    current_app.logger.exception(message)
    return jsonify({
        "success": False,
        "error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
    }), 500


def bad_request(message: str, **details):
    return jsonify({
        "success": False,
        "error": {"code": "VALIDATION_ERROR", "message": message, "details": details},
    }), 400

from flask import Blueprint, jsonify, request
from flask_limiter.util import get_remote_address

# GENERIC Error


def error(status=400, detail="Bad Request", **extra):
    return jsonify({"status": status, "detail": detail, **extra}), status


def error_from(exc):
    """Error response for an :class:`authguard.errors.Error`"""
    extra = exc.serialize
    extra.pop("message", None)
    return error(status=exc.status, detail=exc.message, **extra)


def client_info():
    """Client IP (after ProxyFix) and User-Agent of the current request"""
    return get_remote_address(), request.headers.get("User-Agent")


endpoints = Blueprint("endpoints", __name__)
import authguard.routes.api.v1.admin  # noqa: E402, F401
import authguard.routes.api.v1.auth  # noqa: E402, F401

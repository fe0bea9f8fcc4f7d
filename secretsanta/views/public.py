from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask.views import MethodView
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import GameRecord


logger = logging.getLogger(__name__)

public_bp = Blueprint("public", __name__)


class HealthView(MethodView):
    def get(self):
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Health check failed: %s", e)
            return jsonify({"status": "unhealthy", "database": {"connected": False, "error": str(e)}}), 503
        return jsonify({
            "status": "healthy",
            "database": {"connected": True},
            "num_games": GameRecord.query.count(),
        })


public_bp.add_url_rule("/health", view_func=HealthView.as_view("health"))

# Package
from flask import Blueprint

from planner.logging_config import get_logger

logger = get_logger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

from planner.api import routes

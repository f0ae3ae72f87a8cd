"""HTTP surface of the Patient identity-matching server."""
from priorauth.api.main import create_app

__all__ = ["create_app"]

"""
Extension instances shared by the app factory and the blueprints.

Created unbound here and bound in create_app() so routes can import them
without importing the app. `api` and `extractor` are the HTTP clients for
the REST backend and the PDF extraction service.
"""

from flask_login import LoginManager
from flask_wtf import CSRFProtect

from .api import ApiClient
from .extractor import ExtractorClient

login_manager = LoginManager()
csrf = CSRFProtect()
api = ApiClient()
extractor = ExtractorClient()

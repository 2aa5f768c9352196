"""
Application configuration.
This module defines the configuration settings for the Flask front-end, including the REST backend URL,
the document-extraction service URL, the secret key and other settings. It uses environment variables for
sensitive information and defaults for development. In production, make sure to set the appropriate
environment variables and secure the secret key.
"""

import os


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # REST backend (contracts, orders, users, auth)
    API_URL = os.environ.get("API_URL", "http://localhost:3000")

    # PDF table extraction microservice
    EXTRACTOR_URL = os.environ.get("EXTRACTOR_URL", "http://localhost:8000")

    # Seconds. Applies to both services; no retries are made.
    API_TIMEOUT = float(os.environ.get("API_TIMEOUT", "30"))

    # CSRF protection for forms
    WTF_CSRF_ENABLED = True

    # App UI name (used in templates)
    APP_NAME = "SIGECON"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Session keys holding the bearer token and the cached user profile
    SESSION_TOKEN_KEY = "sigecon_token"
    SESSION_USER_KEY = "sigecon_user"

    # Success messages disappear after this many milliseconds
    FLASH_TIMEOUT_MS = 2500

    # Default texts written into the order spreadsheet header
    XLSX_DEFAULTS = {
        "deText": "SECRETARIA MUNICIPAL DE GESTÃO E ORÇAMENTO",
        "paraText": "05.281.738/0001-98",
        "nomeRazao": "S. T. BORBA",
        "endereco": "RUA DEP. RAIMUNDO BACELAR,421, CENTRO, COELHO NETO-MA",
        "celularTexto": "CONTRATO Nº 009 DE 09 DE JANEIRO DE 2025",
        "tiposDespesaSelecionados": ["SERVIÇOS / OBRAS DE ENGENHARIA"],
        "modalidadesSelecionadas": ["PREGÃO ELETRÔNICO"],
    }

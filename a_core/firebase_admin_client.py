import logging

import firebase_admin
from firebase_admin import credentials, firestore
from django.conf import settings

logger = logging.getLogger(__name__)


def get_app():
    """Initialise the default Firebase app on first use and return it."""
    if not firebase_admin._apps:
        cred_path = getattr(settings, "FIREBASE_CREDENTIALS_FILE", None)
        if cred_path:
            cred = credentials.Certificate(cred_path)
        else:
            cred = credentials.ApplicationDefault()
        options = {}
        project_id = getattr(settings, "FIREBASE_PROJECT_ID", None)
        if project_id:
            options["projectId"] = project_id
        firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialised (project=%s)", project_id or "default")
    return firebase_admin.get_app()


def get_db():
    get_app()
    return firestore.client()

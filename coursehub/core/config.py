"""
Course Hub Configuration
Database, auth and reward settings
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "coursehub_db")

# Auth (tokens are issued by the identity service)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Comma separated list of emails that always get the admin role
ADMIN_EMAILS = frozenset(
    email.strip().lower()
    for email in os.getenv("ADMIN_EMAILS", "").split(",")
    if email.strip()
)

# Uploaded student certificates
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads/student-certs")

# Rewards
CERTIFICATE_ID_PREFIX = os.getenv("CERTIFICATE_ID_PREFIX", "TG")
CERTIFICATE_POINTS = int(os.getenv("CERTIFICATE_POINTS", "100"))
DEFAULT_PROGRAM_POINTS = int(os.getenv("DEFAULT_PROGRAM_POINTS", "50"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

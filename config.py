"""
Runtime settings for the Fan Store API.

Values come from the environment (a local .env file is loaded first).
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
# Multi-document transactions need a replica set or mongos
DATABASE_TRANSACTIONS = os.getenv("DATABASE_TRANSACTIONS", "0") == "1"

# Security/JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(7 * 24 * 60)))

# Order confirmation email
EMAIL_HOST = os.getenv("EMAIL_HOST")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "465"))
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "Khurshid Fans")

# Order confirmation deep link
WHATSAPP_NUMBER = os.getenv("WHATSAPP_NUMBER", "")
CURRENCY_LABEL = os.getenv("CURRENCY_LABEL", "Rs.")

# 0 keeps guest carts forever
GUEST_CART_TTL_DAYS = int(os.getenv("GUEST_CART_TTL_DAYS", "0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))

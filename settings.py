# settings.py
import os

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SCHEMA = os.getenv("SCHEMA", "public")

# Pricing
DELIVERY_FEE = float(os.getenv("DELIVERY_FEE", "5.00"))
DELIVERY_ESTIMATE = os.getenv("DELIVERY_ESTIMATE", "Next available slot")
GST_RATE = float(os.getenv("GST_RATE", "0.05"))
PST_RATE = float(os.getenv("PST_RATE", "0.07"))
CURRENCY = os.getenv("CURRENCY", "cad")

# Inventory
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))

# Local cart persistence
CART_STORAGE_PATH = os.getenv("CART_STORAGE_PATH", ".cart.json")

# Payment gateway
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
PAYMENT_SUCCESS_URL = os.getenv("PAYMENT_SUCCESS_URL", "http://localhost:8501/?payment=success")
PAYMENT_CANCEL_URL = os.getenv("PAYMENT_CANCEL_URL", "http://localhost:8501/?payment=cancelled")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

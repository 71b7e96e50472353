# FILE: app/config.py
# ==============================================================================
# Central settings. Everything is read from the environment (or a local .env).
# ==============================================================================
import os
from dotenv import load_dotenv

load_dotenv()

# --- Core Credentials & URLs ---
DATABASE_URL = os.getenv('DATABASE_URL')
SUPABASE_URL = os.getenv('SUPABASE_URL', '')
SUPABASE_SERVICE_ROLE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY', '')
SUPABASE_JWT_SECRET = os.getenv('SUPABASE_JWT_SECRET')
JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
RESEND_API_KEY = os.getenv('RESEND_API_KEY')
SITE_URL = os.getenv('SITE_URL', 'https://naodludzie.pl')

# --- Email Configuration ---
RESEND_API_URL = os.getenv('RESEND_API_URL', 'https://api.resend.com/emails')
EMAIL_FROM = os.getenv('EMAIL_FROM', 'NaOdludzie <noreply@naodludzie.pl>')
ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'kontakt@naodludzie.pl')
CONTACT_EMAIL = os.getenv('CONTACT_EMAIL', 'kontakt@naodludzie.pl')

# --- Storage & Image Optimisation ---
STORAGE_BUCKET = os.getenv('STORAGE_BUCKET', 'cabin-images')
IMAGE_PROXY_URL = os.getenv('IMAGE_PROXY_URL', 'https://images.weserv.nl/')

# --- Map Data ---
OVERPASS_API_URL = os.getenv('OVERPASS_API_URL', 'https://overpass-api.de/api/interpreter')
NOMINATIM_URL = os.getenv('NOMINATIM_URL', 'https://nominatim.openstreetmap.org/reverse')

# --- Business Rules ---
PLATFORM_FEE_PERCENT = 7
# Commission quoted in the manual-transfer terms. Differs from the Stripe fee above
# and is intentionally not reconciled with it.
MANUAL_PATH_ADVERTISED_COMMISSION_PERCENT = 5
GUEST_PRICE_MARKUP = 1.07
CURRENCY = 'pln'
BOOKING_REQUEST_TTL_HOURS = 24
CABIN_ACTIVE_DAYS = 60
VERIFICATION_TRANSFER_AMOUNT_PLN = 1

# --- Timeouts (seconds) ---
ICAL_FETCH_TIMEOUT = 10.0
ICAL_BATCH_FETCH_TIMEOUT = 15.0
OVERPASS_TIMEOUT = 15.0
HTTP_USER_AGENT = 'NaOdludzie/1.0 (Calendar Sync)'

# --- Application Settings ---
TIMEZONE = "Europe/Warsaw"

# --- Validation ---
if not all([
    DATABASE_URL,
    SUPABASE_JWT_SECRET,
]):
    raise ValueError("A required setting is missing. Check DATABASE_URL and SUPABASE_JWT_SECRET.")

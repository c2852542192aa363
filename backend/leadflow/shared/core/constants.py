"""
Centralized Constants for the Leadflow pipeline.
Values that are not environment-specific live here; tunables live in config.py.
"""

# ============================================
# DATABASE POOL SETTINGS
# ============================================
DB_POOL_SIZE = 5
DB_MAX_OVERFLOW = 10
DB_POOL_RECYCLE = 300

# ============================================
# QUERY LIMITS
# ============================================
DEFAULT_PAGE_SIZE = 100       # Default limit for lead/job listing queries
MAX_ERROR_MESSAGE_LENGTH = 2000  # Stored error messages are truncated to this

# ============================================
# CLIENT CONFIG
# ============================================
DEFAULT_API_KEY_PREFIX = "LEADWRAITH"  # Used when a client has no prefix of its own

# ============================================
# PROGRESS
# ============================================
PROGRESS_MIN = 0
PROGRESS_MAX = 100

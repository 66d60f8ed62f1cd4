"""
auth — User authentication module.

Provides:
  • Signed access / refresh token creation & verification
  • Password hashing (bcrypt, work factor 10)
  • Session cookies
  • Register / Login / Refresh / Logout API routes
  • ``get_current_user_id`` FastAPI dependency
"""

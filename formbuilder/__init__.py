"""
Form builder core.
Schema model, validation rules, derived values and the consistency pass
that keeps an edited form schema well-formed.
"""

__version__ = "1.0.0"

"""Office Presence package.

Organized by feature modules (users, offices, attendance, goodies, locations, ...)
with a thin Flask controller layer over service/repository layers. Every service
asks the access scope resolver before touching data.
"""

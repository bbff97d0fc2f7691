"""Quiz game services: the progression record, question timing, scoring,
ownership checks and room broadcasts.

Routes and socket handlers import from here; nothing in this package
knows about request bodies or HTTP status codes except ``access``.
"""

"""
Marginalia — A Social Reading & Book-Club Backend
==================================================
Readers share stories about what they're reading, follow each other,
trade notes, and gather in book discussions whose authors approve who
gets a seat at the table.

Package layout::

    marginalia/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared page sizes, defaults, allow lists
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session + async helper
    │   └── models.py      # All ORM models
    ├── services/
    │   ├── errors.py                # Service error taxonomy
    │   ├── serializers.py           # ORM → JSON-ready dicts
    │   ├── participation_service.py # Join / approve / withdraw workflow
    │   ├── discussion_service.py    # Discussion catalogue
    │   ├── story_service.py         # Stories, likes, comments, feed
    │   ├── user_service.py          # Profiles, follows, search
    │   ├── note_service.py          # Direct messages
    │   └── home_service.py          # "My home" aggregation
    └── api/
        ├── __main__.py    # python -m marginalia.api
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT authenticator + DB dependencies
        ├── auth.py        # /auth/me
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"

# socialize/db/base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def load_all_models():
    # Import models ONLY for side-effect registration
    import socialize.db.models.tenant  # noqa
    import socialize.db.models.role  # noqa
    import socialize.db.models.user  # noqa
    import socialize.db.models.auth_session  # noqa
    import socialize.db.models.social_platform  # noqa
    import socialize.db.models.content_upload  # noqa

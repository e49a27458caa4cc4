from sqlmodel import SQLModel, Session, create_engine
from reelstream.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

def init_db():
    # import models so their tables are registered on the metadata
    from reelstream import models  # noqa: F401
    SQLModel.metadata.create_all(engine)

def get_session():
    with Session(engine) as session:
        yield session

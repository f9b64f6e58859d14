from sqlmodel import SQLModel, create_engine, Session

from quizai.config import get_settings

DATABASE_URL = get_settings().database_url

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db():
    # register tables on the metadata before create_all
    import quizai.models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def reset_db():
    import quizai.models  # noqa: F401
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine, expire_on_commit=False)

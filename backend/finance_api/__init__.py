# finance_api - personal finance REST backend (FastAPI + SQLAlchemy)
__version__ = "0.2.0"

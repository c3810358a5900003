from skillbase.db.models import Base, TimeStampMixin

__all__ = ["Base", "TimeStampMixin"]

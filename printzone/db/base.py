from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

# sqlite автоинкрементит только INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass

# без AUTOINCREMENT sqlite отдаёт id удалённых строк новым, а клиент может держать старый id
SQLITE_AUTOINCREMENT = {"sqlite_autoincrement": True}

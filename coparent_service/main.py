import logging
from fastapi import FastAPI
from coparent_service.db.database import Base, engine, check_db_connection
from coparent_service.models import expenses, family, obligations  # noqa: F401 register tables
from coparent_service.api.v1.routes.expenses import router as expenses_router
from coparent_service.api.v1.routes.expense_actions import router as expense_actions_router
from coparent_service.api.v1.routes.obligations import router as obligations_router
from coparent_service.rabbitmq.setup import init_rabbitmq
from coparent_service.rabbitmq.producer import close_rabbitmq_producer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Co-Parent Expense Service",
    description="Tracks shared child expenses, their approval lifecycle and how they are split",
    version="1.0.0"
)


@app.on_event("startup")
def startup():
    init_rabbitmq()


@app.on_event("shutdown")
def shutdown():
    close_rabbitmq_producer()


app.include_router(expenses_router)
app.include_router(expense_actions_router)
app.include_router(obligations_router)

@app.get("/")
def read_root():
    return {"message": "Co-Parent Expense Service API", "version": "1.0.0"}

@app.get("/health")
def health_check():
    database_ok = check_db_connection()
    return {"status": "healthy" if database_ok else "degraded", "database": database_ok}

"""
Registre central des routers.
- API v1: courses, orders, payments (checkout, webhook, confirm)
- Health: health_router
"""
from fastapi import FastAPI
from payflow.courses import views as courses_views
from payflow.orders import views as orders_views
from payflow.payments import views as payments_views
from payflow.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(courses_views.router)
    app.include_router(orders_views.router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)

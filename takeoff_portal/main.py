from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from takeoff_portal.logging_config import configure_logging
from takeoff_portal.routers import auth, companies, status_config, takeoffs
from takeoff_portal.security.sessions import install_auth_middleware

configure_logging()

app = FastAPI(title='Takeoff Portal')

install_auth_middleware(app)

app.include_router(auth.router)
app.include_router(status_config.router)
app.include_router(takeoffs.router)
app.include_router(companies.router)


@app.get('/api/health-check', response_class=PlainTextResponse)
def health_check() -> str:
    return 'OK'

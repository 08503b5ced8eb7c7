from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lp_backtest.api.routers.backtest import router as backtest_router
from lp_backtest.api.routers.position_fees import router as position_fees_router

app = FastAPI(title="LP Backtest API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(backtest_router)
app.include_router(position_fees_router)

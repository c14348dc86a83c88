from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tikiti.health.service import health_supabase_info
from tikiti.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_supabase_info())

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)

"""
Sondes de santé Supabase: résolution DNS de l'hôte puis lecture d'une ligne par table métier.
"""
from typing import Any, Dict
from urllib.parse import urlparse
import socket

import tikiti.infra.supabase_client as supabase_client
from tikiti.config import SUPABASE_URL

PROBED_TABLES = ("events", "orders", "tickets", "payouts")

def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("id").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def _check_dns(hostname: str) -> Dict[str, Any]:
    try:
        socket.getaddrinfo(hostname, 443)
        return {"dns_ok": True, "dns_error": None}
    except OSError as e:
        return {"dns_ok": False, "dns_error": str(e)}

def health_supabase_info() -> Dict[str, Any]:
    hostname = urlparse(SUPABASE_URL).hostname if SUPABASE_URL else None
    info: Dict[str, Any] = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": None,
        "dns_error": None,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    if hostname:
        info.update(_check_dns(hostname))
    try:
        client = supabase_client.get_service_supabase()
        for name in PROBED_TABLES:
            info["tables"][name] = _check_table(client, name)
        info["connect_ok"] = all(t["ok"] for t in info["tables"].values())
    except Exception as e:
        info["error"] = str(e)
    return info

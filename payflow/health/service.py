from urllib.parse import urlparse
import socket

from payflow.config import (
    SUPABASE_URL,
    PURCHASE_INTENTS_TABLE,
    COURSES_TABLE,
    ENROLLMENTS_TABLE,
    ORDERS_TABLE,
)
from payflow.infra import supabase_client

# enrollments n'a pas de colonne id (clé composite user_id, course_id)
_CHECK_COLUMNS = {ENROLLMENTS_TABLE: "user_id"}

def _check_table(client, name: str):
    try:
        res = client.table(name).select(_CHECK_COLUMNS.get(name, "id")).limit(1).execute()
        cnt = len(res.data or [])
        return {"ok": True, "rows": cnt}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def health_supabase_info():
    effective_url = SUPABASE_URL
    parsed = urlparse(effective_url) if effective_url else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info = {
        "supabase_url": effective_url,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {}
    }
    try:
        client = supabase_client.get_service_supabase()
        for t in [PURCHASE_INTENTS_TABLE, COURSES_TABLE, ENROLLMENTS_TABLE, ORDERS_TABLE]:
            info["tables"][t] = _check_table(client, t)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = str(e)
    return info

from typing import Optional

from fastapi import Request


def get_client_ip(request: Request) -> Optional[str]:
    """ 프록시 헤더 우선, 없으면 소켓 peer 주소 """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None

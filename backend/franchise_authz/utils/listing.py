from __future__ import annotations
from typing import Iterable, Optional
from flask import request, abort, make_response
from franchise_authz.config.pagination import normalize_pagination
import hashlib


def request_pagination():
    try:
        return normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_list_response(rows: list, total: int, limit: int, offset: int):
    """List payload with an ETag; answers 304 when If-None-Match already carries it."""
    latest = rows[0].get('created_at') if rows else None
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, latest)
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag:
        resp = make_response('', 304)
    else:
        resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    return resp

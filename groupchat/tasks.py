"""
Background tasks using RQ (Redis Queue)
Delivers push notifications to members who are not connected
"""
from rq.decorators import job
from redis import Redis
import os

import requests


# Redis connection setup
redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
if redis_url.startswith('rediss://'):
    redis_url += '?ssl_cert_reqs=none'
redis_conn = Redis.from_url(redis_url)


@job('default', connection=redis_conn, timeout='5m')
def deliver_push_notification(user_id, payload):
    """
    Background job to post one push notification to the push gateway

    Args:
        user_id: Recipient user ID
        payload: Dict with 'title', 'body' and 'data'
    """
    from groupchat import create_app, db
    from groupchat.models.user import User

    app = create_app(os.getenv('FLASK_ENV', 'production'))

    with app.app_context():
        user = db.session.get(User, user_id)
        if not user or not user.is_active or not user.push_token:
            print(f"[PUSH] Skipping user {user_id}: no active push token")
            return {"status": "skipped", "user_id": user_id}

        gateway_url = app.config.get('PUSH_GATEWAY_URL')
        if not gateway_url:
            print(f"[PUSH] PUSH_GATEWAY_URL not configured, dropping notification for user {user_id}")
            return {"status": "skipped", "user_id": user_id}

        try:
            response = requests.post(
                gateway_url,
                json={
                    'to': user.push_token,
                    'title': payload.get('title'),
                    'body': payload.get('body'),
                    'data': payload.get('data', {}),
                    'sound': 'default'
                },
                timeout=app.config.get('PUSH_TIMEOUT', 10)
            )
            response.raise_for_status()
            print(f"[PUSH] Delivered notification to user {user_id}")
            return {"status": "delivered", "user_id": user_id}

        except requests.RequestException as e:
            print(f"[PUSH] Error delivering to user {user_id}: {type(e).__name__}: {e}")
            raise

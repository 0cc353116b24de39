import json

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog


def get_request_id(request):
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def _request_actor(request):
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated or getattr(user, "is_store", False):
        return None
    return user


def create_audit_log(
    *,
    actor=None,
    branch=None,
    branch_id=None,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    request_id=None,
):
    def _json_safe(value):
        if value is None:
            return None
        return json.loads(json.dumps(value, cls=DjangoJSONEncoder))

    return AuditLog.objects.create(
        actor=actor,
        branch_id=branch.id if branch is not None else branch_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=_json_safe(before_snapshot),
        after_snapshot=_json_safe(after_snapshot),
        request_id=request_id,
    )


def create_audit_log_from_request(
    request,
    *,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    branch=None,
    branch_id=None,
):
    return create_audit_log(
        actor=_request_actor(request),
        branch=branch,
        branch_id=branch_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        request_id=get_request_id(request),
    )

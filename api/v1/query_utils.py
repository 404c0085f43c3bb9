from django.utils.dateparse import parse_date as django_parse_date

from bms.domain.errors import ValidationError


def parse_int(value):
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_date(value):
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return django_parse_date(text)
    except ValueError:
        return None


def date_param(request, name: str, *, required: bool = False):
    raw = request.query_params.get(name)
    value = parse_date(raw)
    if value is None and (required or (raw or "").strip()):
        raise ValidationError(
            f"Query parameter '{name}' must be a date (YYYY-MM-DD).",
            field=name,
        )
    return value


def date_range_params(request, *, required: bool = False):
    start = date_param(request, "start", required=required)
    end = date_param(request, "end", required=required)
    if start and end and end < start:
        raise ValidationError("End date must not be before start date.", field="end")
    return start, end


def int_param(request, name: str):
    raw = request.query_params.get(name)
    if raw is None or not str(raw).strip():
        return None
    value = parse_int(raw)
    if value is None:
        raise ValidationError(f"Query parameter '{name}' must be an integer.", field=name)
    return value

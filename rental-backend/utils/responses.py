import json

from flask import jsonify, request

from services.errors import ValidationError

SORT_ORDERS = ('asc', 'desc')


def success(data=None, message=None, status=200, **extra):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def error(message, status=400, **extra):
    body = {'success': False, 'message': message}
    body.update(extra)
    return jsonify(body), status


def pagination_args(default_limit=10):
    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), 100)


def apply_sort(query, model, columns, default_field, default_order='asc'):
    """Sắp xếp theo sortBy/sortOrder; sortBy là tên camelCase trong `columns`."""
    sort_by = request.args.get('sortBy', default_field)
    sort_order = request.args.get('sortOrder', default_order)
    column = columns.get(sort_by) or columns[default_field]
    attr = getattr(model, column)
    return query.order_by(attr.desc() if sort_order == 'desc' else attr.asc())


def paginated(query, serializer, default_limit=10):
    page, limit = pagination_args(default_limit)
    result = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        'data': [serializer(item) for item in result.items],
        'pagination': {
            'currentPage': result.page,
            'totalPages': result.pages,
            'totalItems': result.total,
            'itemsPerPage': limit,
            'hasNext': result.has_next,
            'hasPrev': result.has_prev,
        },
    }


def request_data():
    """Body JSON hoặc form multipart; các trường JSON lồng trong form được parse."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    data = request.form.to_dict()
    for key, value in list(data.items()):
        if isinstance(value, str) and value[:1] in ('{', '['):
            try:
                data[key] = json.loads(value)
            except ValueError:
                raise ValidationError(f'Trường {key} không phải JSON hợp lệ')
    return data


def bool_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    return value.lower() == 'true'

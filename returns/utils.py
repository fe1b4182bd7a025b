from .exceptions import InvalidDataError


def set_metadata(obj, metadata):
    """
    Merge new metadata into obj.metadata and return the merged dict.

    New keys override existing ones, untouched keys are preserved. obj itself
    is not modified.
    """
    existing = obj.metadata or {}
    new_data = {}
    for key, value in metadata.items():
        if not isinstance(key, str):
            raise InvalidDataError(
                "Key type is invalid. Metadata keys must be strings"
            )
        new_data[key] = value

    return {**existing, **new_data}


def build_filters(selector):
    """
    Turn a selector dict into Django filter kwargs.

    List / tuple / set values become `__in` lookups, everything else is
    passed through, so {'id': [1, 2], 'status': 'requested'} filters on
    id IN (1, 2) AND status = 'requested'.
    """
    filters = {}
    for key, value in (selector or {}).items():
        if isinstance(value, (list, tuple, set)):
            filters[f'{key}__in'] = list(value)
        else:
            filters[key] = value
    return filters


def prefetch_names(relations):
    """Dotted relation paths ('swap.additional_items') to Django lookups."""
    return [relation.replace('.', '__') for relation in relations or []]

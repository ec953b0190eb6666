# watchrouter
__version__ = "0.1.0"


def parse_version_tuple(version_str):
    try:
        parts = version_str.split('.')[:3]
        return tuple(int(part) if part.isdigit() else 0 for part in parts)
    except (ValueError, AttributeError):
        return (0, 0, 0)


__version_tuple__ = parse_version_tuple(__version__)

import re


def clean_error_message(error: BaseException | str) -> str:
    """Shorten upstream errors that embed a whole HTML error page."""
    message = str(error)
    if "<!DOCTYPE html>" not in message and "<html" not in message:
        return message

    status = re.search(r"(\d{3})", message)
    endpoint = re.search(r"Cannot (GET|POST|PUT|DELETE) ([^\s<]+)", message)

    if status and endpoint:
        return f"API Error {status.group(1)}: {endpoint.group(0)}"
    if status:
        return f"API Error {status.group(1)}"
    if endpoint:
        return f"API Error: {endpoint.group(0)}"
    return "API Error: The server returned an HTML response instead of JSON"

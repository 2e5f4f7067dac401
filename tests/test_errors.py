import pytest

from estate_crm.errors import clean_error_message


@pytest.mark.parametrize("message,expected", [
    (
        "Failed with 404: <!DOCTYPE html><html><body><pre>Cannot GET /locations/v1</pre></body></html>",
        "API Error 404: Cannot GET /locations/v1",
    ),
    ("<html><body><h1>502 Bad Gateway</h1></body></html>", "API Error 502"),
    ("<html><body>Cannot POST /users/</body></html>", "API Error: Cannot POST /users/"),
    (
        "<!DOCTYPE html><html><body>Something broke</body></html>",
        "API Error: The server returned an HTML response instead of JSON",
    ),
])
def test_html_pages_are_summarized(message, expected):
    assert clean_error_message(message) == expected


def test_plain_messages_pass_through():
    assert clean_error_message(ValueError("Trigger returned 401: bad key")) == "Trigger returned 401: bad key"

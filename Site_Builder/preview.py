import re

from .state import WebsiteFiles

HEAD_SECTION = re.compile(r"<head>.*?</head>", re.IGNORECASE | re.DOTALL)
EXTERNAL_SCRIPT = re.compile(r"<script[^>]*src=\"[^\"]*\"[^>]*></script>", re.IGNORECASE)
EXTERNAL_LINK = re.compile(r"<link[^>]*href=\"[^\"]*\"[^>]*>", re.IGNORECASE)
BODY_CONTENT = re.compile(r"<body[^>]*>(.*?)</body>", re.IGNORECASE | re.DOTALL)

WAITING_DOCUMENT = "<h1>Waiting for AI to generate index.html...</h1>"

PREVIEW_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Live Preview</title>
  <style>
"""


def build_preview_document(files: WebsiteFiles) -> str:
    """Inline the CSS and JS into the HTML body so the preview frame needs no other files."""
    if not files.html:
        return WAITING_DOCUMENT

    html = HEAD_SECTION.sub("", files.html)
    html = EXTERNAL_SCRIPT.sub("", html)
    html = EXTERNAL_LINK.sub("", html)

    body_match = BODY_CONTENT.search(html)
    body = body_match.group(1) if body_match else html

    # Generated code is full of braces, so no str.format here
    return "".join([
        PREVIEW_HEAD,
        files.css,
        "\n  </style>\n</head>\n<body>\n",
        body.strip(),
        "\n  <script>\n",
        files.js,
        "\n  </script>\n</body>\n</html>",
    ])

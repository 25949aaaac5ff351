"""Scripted model backends and canned model responses shared by the tests."""

import asyncio
from typing import List, Optional


BAKERY_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Sweet Crumbs Bakery</title>
    <link rel="stylesheet" href="styles.css">
</head>
<body>
    <header class="site-header"><h1>Sweet Crumbs</h1></header>
    <main><p>Fresh bread every morning.</p></main>
    <script src="index.js"></script>
</body>
</html>"""

BAKERY_CSS = """.site-header {
    background: #f4d9c6;
    padding: 2rem;
}"""

BAKERY_JS = """document.querySelector('.site-header').addEventListener('click', () => {
    console.log('Welcome to Sweet Crumbs!');
});"""

BAKERY_RESPONSE = f"""[--FILE:index.html--]
{BAKERY_HTML}

[--FILE:styles.css--]
{BAKERY_CSS}

[--FILE:index.js--]
{BAKERY_JS}
"""

BLUE_HTML = BAKERY_HTML.replace('<header class="site-header">', '<header class="site-header blue">')

BLUE_CSS = """.site-header {
    background: blue;
    padding: 2rem;
}"""

# The model left index.js out: it did not need to change
BLUE_HEADER_RESPONSE = f"""[--FILE:index.html--]
{BLUE_HTML}

[--FILE:styles.css--]
{BLUE_CSS}
"""


class FakeBackend:
    """Yields scripted responses in small chunks, one response per call."""

    def __init__(self, name: str, responses: Optional[List[str]] = None, chunk_size: int = 7,
                 error: Optional[BaseException] = None, configured: bool = True,
                 hang_after_first_chunk: bool = False, delay: float = 0):
        self.name = name
        self.model = f"fake-{name}"
        self.responses = list(responses or [])
        self.chunk_size = chunk_size
        self.error = error
        self.configured = configured
        self.hang_after_first_chunk = hang_after_first_chunk
        self.delay = delay
        self.calls = []

    def is_configured(self) -> bool:
        return self.configured

    def ensure_configured(self) -> None:
        if not self.configured:
            from Site_Builder.models import ConfigurationError
            raise ConfigurationError(f"{self.name.upper()}_API_KEY environment variable is required")

    async def generate(self, system_prompt: str, user_prompt: str):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        text = self.responses.pop(0) if self.responses else ""
        for index in range(0, len(text), self.chunk_size):
            yield text[index:index + self.chunk_size]
            if self.hang_after_first_chunk:
                await asyncio.sleep(3600)
            await asyncio.sleep(self.delay)


def make_backends(generation: List[str], intents: List[str], **kwargs):
    return {
        "gemini": FakeBackend("gemini", generation, **kwargs),
        "groq": FakeBackend("groq", intents),
    }

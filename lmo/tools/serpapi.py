"""
A tool searching the web through the Google search API of serpapi.com.

Example:
    ```python
    from lmo.tools import SerpApiTool, SearchInput

    search = SerpApiTool(api_key="...")
    print(search.run(SearchInput(query="top 3 italian dishes")))
    model = create_chat_model(settings, tools=[search.tool()])
    ```

The API key is given explicitly. The tool returns the organic results
as a JSON list of objects with title, link and snippet.
"""

import json

import requests
from pydantic import BaseModel, Field

from lmo.language_models.tools import Tool

SERPAPI_ENDPOINT = "https://serpapi.com/search"
SERPAPI_TOOL_DESCRIPTION = (
    "A tool that uses the Google search engine for a given query, "
    "returning the top results."
)


class SearchInput(BaseModel):
    query: str = Field(description="the search query")


class SearchResult(BaseModel):
    title: str = ""
    link: str = ""
    snippet: str = ""


class SerpApiTool:
    """Google search through serpapi.com."""

    def __init__(
        self,
        api_key: str,
        *,
        google_domain: str = "google.com",
        country: str = "us",
        language: str = "en",
        num_results: int = 5,
        timeout: float = 30.0,
        endpoint: str = SERPAPI_ENDPOINT,
    ) -> None:
        if not api_key:
            raise ValueError("SerpApiTool requires an api_key")
        self.api_key = api_key
        self.google_domain = google_domain
        self.country = country
        self.language = language
        self.num_results = num_results
        self.timeout = timeout
        self.endpoint = endpoint

    def search(self, query: str) -> list[SearchResult]:
        """
        Raises:
            requests.RequestException: if the request fails.
            ValueError: if the response reports an error.
        """
        response = requests.get(
            self.endpoint,
            params={
                "q": query,
                "api_key": self.api_key,
                "google_domain": self.google_domain,
                "gl": self.country,
                "hl": self.language,
                "num": self.num_results,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if "error" in data:
            raise ValueError(f"serpapi error: {data['error']}")

        return [
            SearchResult.model_validate(r)
            for r in data.get("organic_results", [])[: self.num_results]
        ]

    def run(self, search_input: SearchInput) -> str:
        results = self.search(search_input.query)
        return json.dumps([r.model_dump() for r in results])

    def tool(self, name: str = "google_search") -> Tool:
        """The tool to register with a chat model."""
        return Tool(
            name=name,
            description=SERPAPI_TOOL_DESCRIPTION,
            args_model=SearchInput,
            fn=self.run,
        )

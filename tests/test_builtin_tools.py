"""Test the built-in shell and web search tools"""

import json
import shutil
import unittest
from unittest import mock

import requests

from lmo.language_models.thread import ToolCallContent
from lmo.language_models.tools import ToolRegistry
from lmo.tools import SearchInput, SerpApiTool, ShellInput, ShellTool


@unittest.skipIf(shutil.which("bash") is None, "bash not available")
class TestShellTool(unittest.TestCase):

    def test_run(self):
        shell = ShellTool()
        output = shell.run(ShellInput(bash_script='echo "Hello from bash"'))
        self.assertEqual(output, "Hello from bash\n")

    def test_failure(self):
        shell = ShellTool()
        output = shell.run(ShellInput(bash_script="echo oops >&2; exit 3"))
        self.assertIn("exit status 3", output)
        self.assertIn("oops", output)

    def test_refused(self):
        shell = ShellTool(confirm=lambda script: False)
        output = shell.run(ShellInput(bash_script="echo never"))
        self.assertEqual(output, "script not allowed by the user")

    def test_as_tool(self):
        registry = ToolRegistry([ShellTool().tool()])
        messages = registry.dispatch(
            [
                ToolCallContent(
                    id="c1",
                    name="bash",
                    arguments=json.dumps({"bash_script": "echo 42"}),
                )
            ]
        )
        self.assertEqual(messages[0].contents[0].result, "42\n")


def _response(data: dict) -> mock.Mock:
    response = mock.Mock()
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


class TestSerpApiTool(unittest.TestCase):

    def test_requires_key(self):
        with self.assertRaises(ValueError):
            SerpApiTool(api_key="")

    @mock.patch("lmo.tools.serpapi.requests.get")
    def test_search(self, get):
        get.return_value = _response(
            {
                "organic_results": [
                    {
                        "title": "Pasta",
                        "link": "https://example.com/pasta",
                        "snippet": "A dish",
                        "position": 1,
                    },
                    {"title": "Pizza", "link": "https://example.com/pizza"},
                ]
            }
        )
        search = SerpApiTool(api_key="key", num_results=1)
        result = json.loads(search.run(SearchInput(query="italian dishes")))

        self.assertEqual(
            result,
            [
                {
                    "title": "Pasta",
                    "link": "https://example.com/pasta",
                    "snippet": "A dish",
                }
            ],
        )
        params = get.call_args.kwargs["params"]
        self.assertEqual(params["q"], "italian dishes")
        self.assertEqual(params["api_key"], "key")

    @mock.patch("lmo.tools.serpapi.requests.get")
    def test_api_error(self, get):
        get.return_value = _response({"error": "Invalid API key"})
        with self.assertRaises(ValueError):
            SerpApiTool(api_key="key").search("anything")

    @mock.patch("lmo.tools.serpapi.requests.get")
    def test_error_is_tool_result(self, get):
        get.side_effect = requests.ConnectionError("offline")
        registry = ToolRegistry([SerpApiTool(api_key="key").tool()])
        messages = registry.dispatch(
            [
                ToolCallContent(
                    id="c1",
                    name="google_search",
                    arguments='{"query": "news"}',
                )
            ]
        )
        self.assertEqual(messages[0].contents[0].result, "error: offline")


if __name__ == "__main__":
    unittest.main()

"""
Rules Search - interactive console (console.py)

Runs natural-language rules questions through the same pipeline as the HTTP
service and prints the interpretation, the matched rules and the timing.

Usage:
    rules-search-console

Example Queries:
    - "what is the area size for exterior advanced?"
    - "how many hides in master buried?"
    - "time limit for novice container"
"""

import json
import time
from typing import Any, Dict

from rules_search.config import configure_logging, load_settings
from rules_search.errors import RulesSearchError
from rules_search.models import SearchRequest
from rules_search.service import RulesSearchService, build_service


def print_response(response: Dict[str, Any], elapsed_ms: float) -> None:
    print(f"\n{'='*80}")
    print("Analysis:")
    print(json.dumps(response["analysis"], indent=2))
    if response.get("fallback"):
        print("   (keyword fallback: the language model could not be used)")

    print(f"\nResults ({response['count']}):")
    for rule in response["results"]:
        print(f"   [{rule['section']}] {rule['title']}")
        for key, value in rule["measurements"].items():
            print(f"      {key}: {value}")

    if response.get("answer"):
        print(f"\nAnswer: {response['answer']}")

    print(f"\n   Total Time: {elapsed_ms:.2f}ms")
    print(f"{'='*80}\n")


def run_interactive(service: RulesSearchService) -> None:
    """Read queries from stdin until exit."""
    print("\nRules Search Console")
    print("\nExample queries:")
    print("  • what is the area size for exterior advanced?")
    print("  • how many hides in master buried?")
    print("  • time limit for novice container")
    print("\nType 'exit' or 'quit' to stop.\n")

    while True:
        try:
            query = input("Your query: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\n\nExiting...")
            break

        if not query:
            continue

        if query.lower() in ["exit", "quit", "q"]:
            print("Exiting...")
            break

        start = time.time()
        try:
            response = service.search(SearchRequest(query=query))
        except RulesSearchError as exc:
            print(f"\n✗ {exc.public_message} ({exc.stage}: {exc})\n")
            continue
        print_response(response, (time.time() - start) * 1000)


def main() -> None:
    """Main entry point for the console."""
    settings = load_settings()
    configure_logging(settings.log_level)
    run_interactive(build_service(settings))


if __name__ == "__main__":
    main()

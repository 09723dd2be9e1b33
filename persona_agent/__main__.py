"""
Run the persona agent worker.

Usage:
    python -m persona_agent dev      # local development
    python -m persona_agent start    # production

Subcommands come from the LiveKit Agents CLI.
"""
from persona_agent.agent import main

if __name__ == "__main__":
    main()

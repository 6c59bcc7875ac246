"""Run the subscription service: ``python main.py serve``."""

from simple_subscription.cli import main

if __name__ == "__main__":
    main()

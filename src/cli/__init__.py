"""CLI tools for corpuslab.

- ``python -m src.cli warm <types...>``: load corpora into every cache tier
- ``python -m src.cli annotate <type>``: run the annotation pipeline
- ``python -m src.cli stats | invalidate | clear | cleanup``: cache upkeep

All commands use argparse and build their components through
``src.main._build_all``; heavy imports are deferred until a command runs.
"""

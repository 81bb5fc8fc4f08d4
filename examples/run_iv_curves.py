"""Run LEED IV-curve calculations from a JSON input file.

Usage examples:
  python examples/run_iv_curves.py --write-template examples/configs/iv_template.json
  python examples/run_iv_curves.py --input examples/configs/iv_template.json --log-level DEBUG
"""

from leedpy.workflows.iv_run import main


if __name__ == "__main__":
    main()

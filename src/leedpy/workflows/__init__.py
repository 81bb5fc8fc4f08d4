from .iv_run import main, run_iv_curves, write_input_template

__all__ = ["main", "run_iv_curves", "write_input_template"]

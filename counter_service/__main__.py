"""
程序入口：python -m counter_service [run|check-config] [-c CONFIG]
"""
from .main import run

if __name__ == "__main__":
    run()

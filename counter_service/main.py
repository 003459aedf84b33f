"""
应用启动逻辑模块：
- 解析命令行参数。
- 加载配置。
- 初始化日志。
- 构造服务并交给 LifecycleCoordinator 运行，直到收到关闭信号。
"""

import argparse
import asyncio
import json
import logging
import logging.config
import sys

from .core.config import SettingsDict, describe_settings, load_settings
from .core.errors import ConfigError, FatalShutdownError, FatalStartupError
from .core.logging_config import get_logging_config
from .services.lifecycle import LifecycleCoordinator, build_services

logger = logging.getLogger(__name__)

async def serve(settings: SettingsDict):
    """在当前事件循环中构造服务并运行到关闭完成。"""
    services = build_services(settings)
    logger.info(f"Effective settings: {json.dumps(describe_settings(settings))}")
    coordinator = LifecycleCoordinator(services)
    await coordinator.run()

def run_server(args):
    """启动计数服务"""
    # 1. 加载配置
    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        sys.exit(1)

    # 2. 初始化日志
    logging.config.dictConfig(get_logging_config(settings["log_level"]))

    # 3. 运行，启动与关闭阶段的错误都是致命的
    try:
        asyncio.run(serve(settings))
    except (FatalStartupError, FatalShutdownError) as e:
        logger.critical(f"{e.__class__.__name__}: {e}")
        sys.exit(1)

def check_config(args):
    """加载配置并以 JSON 打印（密码已脱敏）"""
    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(describe_settings(settings), indent=2))

def run(argv=None):
    """
    主运行函数，用于解析命令行参数并分发到相应的处理函数。
    """
    parser = argparse.ArgumentParser(
        description="Counter service. Use 'run' to start the server or 'check-config' to print the effective settings."
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' 子命令 (启动服务器)
    parser_run = subparsers.add_parser("run", help="Run the counter server (default command)")
    parser_run.add_argument(
        "-c", "--config",
        type=str,
        help="Path to an optional JSON configuration file. Environment variables override it."
    )
    parser_run.set_defaults(func=run_server)

    # 'check-config' 子命令
    parser_check = subparsers.add_parser("check-config", help="Load and print the effective settings")
    parser_check.add_argument(
        "-c", "--config",
        type=str,
        help="Path to an optional JSON configuration file."
    )
    parser_check.set_defaults(func=check_config)

    # 如果没有提供子命令，则默认为 'run'
    # 这使得 `python -m counter_service -c x.json` 和 `... run -c x.json` 效果相同
    argv = sys.argv[1:] if argv is None else list(argv)
    if not argv or argv[0] not in ("run", "check-config", "-h", "--help"):
        argv = ["run"] + argv
    args = parser.parse_args(argv)

    args.func(args)

if __name__ == "__main__":
    run()

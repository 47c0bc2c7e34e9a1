"""命令行入口，负责解析参数、加载应用配置并调用设置服务。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

import argparse  # 导入 argparse 以解析命令行参数。
import json  # 导入 json 以输出设置记录与执行摘要。
import sys  # 导入 sys 以支持通过 python -m 调用。
from typing import Any, Dict, List

from src.btcconf.pipeline import ApplyResult, BitcoinConfigService  # 导入设置服务与结果类型。
from src.btcconf.settings import deep_merge  # 复用设置合并逻辑组合 --json 与 --set。
from src.btcconf.stores import MemoryFileStore, create_file_store  # 导入存储工厂与 dry-run 用的内存存储。
from src.utils.config import (  # 导入配置工具以支持分层加载与快照。
    ConfigError,
    load_and_merge_config,
    parse_cli_set_items,
    render_effective_config,
    save_config,
)
from src.utils.errors import SettingsError, classify_exception  # 导入错误类型与分类函数。
from src.utils.io import read_json_file  # 导入 JSON 读取工具以加载 --json 文件。
from src.utils.logging import get_logger  # 导入日志工具创建结构化日志器。

EXIT_OK = 0  # 成功。
EXIT_FAILURE = 1  # 读写失败等运行期错误。
EXIT_USAGE = 2  # 参数或应用配置错误，与 argparse 保持一致。
EXIT_STALE = 3  # check 子命令：受管配置已过期。

APPLY_COMMANDS = {"apply", "reset"}  # 会触发写入的子命令。


def build_parser() -> argparse.ArgumentParser:
    """创建参数解析器并声明全局选项与子命令。"""  # 函数说明。

    parser = argparse.ArgumentParser(
        prog="btcconf",
        description="Manage bitcoind settings and the generated umbrel-bitcoin.conf",
    )  # 初始化解析器。
    parser.add_argument("--config", default=None, help="可选用户配置 YAML 路径，默认查找 config/user.yaml")
    parser.add_argument("--profile", dest="profile_name", default=None, help="选择预设 profile 名称（mainnet/testnet/signet...）")
    parser.add_argument(
        "--config-set",
        dest="config_set_items",
        action="append",
        default=[],
        help="通过 KEY=VALUE 覆盖应用配置（例如 paths.data_dir=/tmp/btc），可重复使用",
    )
    parser.add_argument("--dry-run", action="store_true", help="只在内存中执行写入并打印计划写入的文件")
    parser.add_argument("--print-config", action="store_true", help="打印最终应用配置快照后退出")
    parser.add_argument("--save-config", default=None, help="保存最终应用配置快照到指定路径后退出")
    parser.add_argument(
        "--log-format",
        choices=["human", "jsonl"],
        default=None,
        help="日志格式，human 适合调试，jsonl 适合机器消费",
    )
    parser.add_argument("--log-level", default=None, help="日志等级（DEBUG/INFO/WARNING/ERROR）")
    parser.add_argument("--log-file", default=None, help="可选日志文件路径，追加写入")
    parser.add_argument("--quiet", action="store_true", help="静默模式，控制台不输出 human 日志")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")  # 子命令集合。
    commands.add_parser("show", help="以 JSON 打印当前生效的设置")
    commands.add_parser("render", help="打印由当前设置渲染的配置文本")
    apply_parser = commands.add_parser("apply", help="合并部分设置并重新生成配置文件")
    apply_parser.add_argument(
        "--set",
        dest="set_items",
        action="append",
        default=[],
        help="设置项 KEY=VALUE，点号表示嵌套（例如 prune.enabled=true），可重复使用",
    )
    apply_parser.add_argument("--json", dest="json_file", default=None, help="从 JSON 文件读取部分设置")
    commands.add_parser("reset", help="恢复默认设置并重置 bitcoin.conf")
    commands.add_parser("check", help="检查受管配置是否与当前设置一致（过期时退出码为 3）")
    return parser


def _build_cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """根据解析结果构造应用配置覆盖字典，仅包含显式传入的键。"""  # 工具函数说明。

    overrides: Dict[str, Any] = parse_cli_set_items(args.config_set_items) if args.config_set_items else {}
    if args.log_format is not None:
        overrides["log_format"] = args.log_format
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.log_file is not None:
        overrides["log_file"] = args.log_file
    if args.quiet:
        overrides["quiet"] = True
    return overrides


def _collect_update(args: argparse.Namespace) -> Dict[str, Any]:
    """组合 --json 文件与 --set 项，后者优先。"""  # 工具函数说明。

    update: Dict[str, Any] = {}
    if args.json_file:
        try:
            payload = read_json_file(args.json_file)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot load settings from {args.json_file}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"Settings file {args.json_file} must contain a JSON object")
        update = payload
    if args.set_items:
        # 设置键区分大小写（cacheSizeMB 等），不能统一小写。
        update = deep_merge(update, parse_cli_set_items(args.set_items, lowercase=False))
    return update


def _print_apply_summary(result: ApplyResult, service: BitcoinConfigService) -> None:
    summary = {"trace_id": result.trace_id, "includer": result.includer_action, "files": service.describe()}
    print(json.dumps(summary, ensure_ascii=False, indent=2))


def _print_planned_writes(store: MemoryFileStore) -> None:
    """dry-run 模式下逐个打印计划写入的文件内容。"""  # 工具函数说明。

    for record in sorted(store.writes, key=lambda item: item.path):  # 三次写入并发完成，按路径排序保证输出稳定。
        print(f"--- {record.path}")
        print(record.content)


def main(argv: List[str] | None = None) -> int:
    """解析参数并执行子命令，返回退出状态码。"""  # 函数说明。

    parser = build_parser()  # 构建解析器。
    args = parser.parse_args(argv)  # 解析命令行参数。
    try:
        update = _collect_update(args) if args.command == "apply" else {}
        bundle = load_and_merge_config(
            cli_set_overrides=_build_cli_overrides(args),
            config_path=args.config,
            profile_name=args.profile_name,
        )  # 执行分层配置加载。
    except ConfigError as exc:
        print(f"btcconf: {exc}", file=sys.stderr)
        return EXIT_USAGE
    config = bundle.config  # 读取最终配置字典。
    logger = get_logger(  # 根据最终配置创建结构化日志器，日志写 stderr 以保持 stdout 干净。
        format=config.get("log_format", "human"),
        level=config.get("log_level", "INFO"),
        log_file=config.get("log_file"),
        sample_rate=float(config.get("log_sample_rate", 1.0)),
        quiet=bool(config.get("quiet", False)),
    ).bind(command=args.command or "config")
    if args.print_config or args.save_config:  # 打印/保存配置快照后直接退出。
        if args.print_config:
            sys.stdout.write(render_effective_config(bundle, include_sources=True))
        if args.save_config:
            try:
                save_config(bundle, args.save_config)
            except OSError as exc:
                print(f"btcconf: cannot save config to {args.save_config}: {exc}", file=sys.stderr)
                return EXIT_FAILURE
            logger.info("configuration saved", path=args.save_config)
        return EXIT_OK
    if args.command is None:
        parser.print_help(sys.stderr)
        return EXIT_USAGE
    if args.command == "apply" and not update:
        print("btcconf: apply needs at least one --set or a --json file", file=sys.stderr)
        return EXIT_USAGE
    logger.debug("effective profile", profile=bundle.profile or "default", store=config["store"], dry_run=args.dry_run)
    file_store = create_file_store(config["store"])
    if args.dry_run:
        # 读取透传到真实存储，写入只落在内存里。
        file_store = MemoryFileStore(fallback=file_store)
    service = BitcoinConfigService.from_config(config, logger=logger, file_store=file_store)
    try:
        if args.command == "show":
            print(json.dumps(service.get_current_settings(), ensure_ascii=False, indent=2))
        elif args.command == "render":
            print(service.render_current_config())
        elif args.command == "check":
            up_to_date = service.check_managed_config_up_to_date()
            print("up-to-date" if up_to_date else "stale")
            return EXIT_OK if up_to_date else EXIT_STALE
        else:
            if args.command == "reset":
                result = service.reset_to_default_settings()
            else:
                result = service.apply_custom_settings(update)
            if args.dry_run:
                _print_planned_writes(file_store)  # type: ignore[arg-type]
            else:
                _print_apply_summary(result, service)
    except SettingsError as exc:
        event = "apply failed" if args.command in APPLY_COMMANDS else "command failed"
        logger.exception(event, exc=exc, category=classify_exception(exc), path=getattr(exc, "path", None))
        print(f"btcconf: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":  # 允许脚本直接运行。
    sys.exit(main())  # 将返回值作为进程退出码。

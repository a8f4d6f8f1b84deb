"""
面试评估系统 - 命令行入口

Builds every service explicitly (chat client, agents, store, engine, batch,
history, simulator) and exposes them as subcommands.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from loguru import logger

from config import Config, load_config
from interview_eval.agents import CandidateAgent, EvaluatorAgent, InterviewerAgent
from interview_eval.evaluation import BatchEvaluationService, EvaluationEngine
from interview_eval.history import HistoryManagementService
from interview_eval.interview import InterviewSimulator
from interview_eval.schema import (
    BatchEvaluationConfig,
    ConversationMessage,
    EvaluationStep,
    FileType,
    HistoryFilter,
    InterviewContext,
    SelectionCriteria,
    SimulationConfig,
)
from interview_eval.storage import FileManager, InteractiveSelector, JsonFileStore, TranscriptParserRegistry
from interview_eval.utils.error_handlers import EvaluationPipelineError

console = Console()

EXPORT_FORMATS = ("json", "csv", "txt")


class InterviewEvalApp:
    """Composition root: owns the backend client and every service built on it."""

    def __init__(self, config: Config):
        self.config = config
        self.console = console

        self.client = config.create_chat_client()
        self.evaluator = EvaluatorAgent(self.client, model=config.llm.evaluator_model)
        self.interviewer = InterviewerAgent(self.client, model=config.llm.interviewer_model)
        self.candidate = CandidateAgent(self.client, model=config.llm.candidate_model)

        self.store = JsonFileStore(config.storage.data_dir)
        self.parser_registry = TranscriptParserRegistry()
        self.file_manager = FileManager(
            self.store,
            max_size=config.evaluation.max_upload_mb * 1024 * 1024,
            resume_agent=self.evaluator,
        )
        self.selector = InteractiveSelector(self.file_manager)
        self.engine = EvaluationEngine(self.evaluator)
        self.batch_service = BatchEvaluationService(
            self.engine, self.store, selector=self.selector, parser_registry=self.parser_registry
        )
        self.history = HistoryManagementService(self.store)

    async def run(self, args) -> int:
        try:
            await self.store.initialize()
            await self.history.initialize()
            return await args.handler(self, args)
        except EvaluationPipelineError as e:
            logger.error(f"{e.kind}: {e.message}")
            self.console.print(f"[red]❌ {e.message}[/red]")
            if e.recovery_suggestion:
                self.console.print(f"[dim]{e.recovery_suggestion}[/dim]")
            return 1
        finally:
            await self.client.close()
            logger.info("Application finished, backend session closed.")

    # --- check ---

    async def check(self, args) -> int:
        self.console.print(Panel(
            "🧭  [bold cyan]面试评估系统[/bold cyan]\n\n"
            "主题分析 → 六维能力评估 → 批量处理与历史记录",
            title="配置检查",
            border_style="cyan",
        ))
        self.console.print_json(json.dumps(self.config.get_summary(), ensure_ascii=False))

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=self.console) as progress:
            task = progress.add_task("[cyan]检查后端连接...", total=1)
            ok = await self.config.validate()
            description = "[green]✅ 后端可用" if ok else "[red]❌ 后端不可用"
            progress.update(task, completed=1, description=description)

        if not ok:
            self.console.print("\n[red]请检查 LLM_BASE_URL 与 LLM_API_KEY 设置。[/red]")
        return 0 if ok else 1

    # --- upload ---

    async def upload(self, args) -> int:
        for path in args.paths:
            uploaded = await self.file_manager.upload_file(Path(path), args.type, validate=not args.no_validate)
            metadata = uploaded.metadata
            self.console.print(
                f"✅ [green]{uploaded.name}[/green] ({uploaded.type}) id=[cyan]{uploaded.id}[/cyan] "
                f"候选人: {metadata.candidate_name or '-'} 职位: {metadata.position or '-'}"
            )
        return 0

    # --- evaluate ---

    async def evaluate(self, args) -> int:
        path = Path(args.transcript)
        content = path.read_text(encoding="utf-8")
        messages = self.parser_registry.parse(content)
        transcript = messages or content

        context = InterviewContext(
            jd=self._read_optional(args.jd),
            resume=self._read_optional(args.resume),
            transcript=content,
        )

        def on_status_change(status: str) -> None:
            self.console.print(f"[dim]状态: {status}[/dim]")

        result = await self.engine.evaluate_interview(
            transcript,
            context,
            step=args.step,
            stage=args.stage or self.config.evaluation.stage,
            previous_summary=self._read_optional(args.previous_summary) or None,
            on_status_change=on_status_change,
        )

        report = self.engine.generate_comprehensive_report(result.topic_analysis, result.evaluation)
        self.console.print(Panel(report.summary.strip(), title="评估结果", border_style="green"))
        for recommendation in report.recommendations:
            self.console.print(f"• {recommendation}")

        output = self.config.storage.export_dir / f"{result.process_id}.json"
        output.write_text(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2), encoding="utf-8")
        self.console.print(f"📄 结果已保存: [green]{output}[/green]")

        if args.save:
            record_id = await self.history.save_to_history(analysis_result=result, tags=args.tags or [])
            self.console.print(f"🗂️  历史记录: [cyan]{record_id}[/cyan]")
        return 0

    # --- batch ---

    async def batch(self, args) -> int:
        criteria = SelectionCriteria(search=args.search, jd=args.jd, candidate=args.candidate)
        settings = self.config.evaluation
        step = args.step
        stage = args.stage or settings.stage
        concurrency = args.concurrency or settings.concurrency

        files = None
        if args.select:
            await self.selector.scan(FileType.CONVERSATION)
            await self.selector.advanced_filter(criteria)
            self._print_files(self.selector.get_filtered_files())
            files = self.selector.select_by_indices(self.selector.parse_selection_string(args.select))
            self.console.print(f"已选择 {len(files)} 个文件")

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
        ) as progress:
            task = progress.add_task("[cyan]批量评估中...", total=100)

            def on_progress(update) -> None:
                progress.update(
                    task,
                    completed=update.percentage,
                    description=f"[cyan]{update.current or ''} ({update.completed}✓ / {update.failed}✗)",
                )

            if files is not None:
                summary = await self.batch_service.process_batch(
                    BatchEvaluationConfig(
                        files=files,
                        step=step,
                        stage=stage,
                        concurrency=concurrency,
                        skip_errors=settings.skip_errors,
                        save_results=settings.save_results,
                    ),
                    on_progress,
                )
            else:
                summary = await self.batch_service.process_batch_with_selection(
                    criteria,
                    step=step,
                    stage=stage,
                    concurrency=concurrency,
                    skip_errors=settings.skip_errors,
                    save_results=settings.save_results,
                    on_progress=on_progress,
                )

        table = Table(title=f"批次 {summary.batch_id}")
        table.add_column("文件", style="white")
        table.add_column("状态")
        table.add_column("评分", style="cyan")
        table.add_column("耗时(ms)", style="dim")
        for result in summary.results:
            evaluation = result.result.evaluation if result.result else None
            table.add_row(
                result.file_name,
                "[green]成功[/green]" if result.success else f"[red]失败: {result.error}[/red]",
                str(evaluation.overall_rating) if evaluation else "-",
                str(result.duration),
            )
        self.console.print(table)

        if args.export:
            output = self.config.storage.export_dir / f"{summary.batch_id}.{args.export}"
            output.write_text(self.batch_service.export_batch_results(summary, args.export), encoding="utf-8")
            self.console.print(f"📄 导出: [green]{output}[/green]")
        return 0 if summary.failure_count == 0 else 2

    # --- history ---

    async def history_list(self, args) -> int:
        records = await self.history.filter_records(HistoryFilter(search=args.search, tags=args.tag or None))
        table = Table(title=f"面试历史 ({len(records)})")
        table.add_column("ID", style="dim")
        table.add_column("候选人", style="white")
        table.add_column("职位", style="white")
        table.add_column("日期")
        table.add_column("状态")
        table.add_column("评分", style="cyan")
        table.add_column("标签")
        for record in records:
            table.add_row(
                record.id,
                record.candidate_name,
                record.position,
                record.interview_date.strftime("%Y-%m-%d %H:%M"),
                record.status,
                str(record.metadata.overall_rating) if record.metadata.overall_rating is not None else "-",
                ", ".join(record.tags),
            )
        self.console.print(table)
        return 0

    async def history_stats(self, args) -> int:
        statistics = await self.history.get_statistics()
        table = Table(title="历史统计")
        table.add_column("指标", style="cyan")
        table.add_column("数值", style="white")
        table.add_row("总记录数", str(statistics.total_records))
        table.add_row("已完成", str(statistics.completed_records))
        table.add_row("失败", str(statistics.failed_records))
        table.add_row("平均评分", f"{statistics.average_rating:.2f}")
        table.add_row("平均置信度", f"{statistics.average_confidence:.2f}")
        for position, count in statistics.position_distribution.items():
            table.add_row(f"职位: {position}", str(count))
        self.console.print(table)

        if statistics.top_candidates:
            self.console.print("\n[bold]🏆 Top 候选人[/bold]")
            for i, candidate in enumerate(statistics.top_candidates, 1):
                self.console.print(f"{i}. {candidate.name} - {candidate.rating}")
        return 0

    async def history_export(self, args) -> int:
        records = await self.history.filter_records(HistoryFilter(search=args.search))
        content = self.history.export_records(records, args.format)
        if args.output:
            Path(args.output).write_text(content, encoding="utf-8")
            self.console.print(f"📄 导出 {len(records)} 条记录到 [green]{args.output}[/green]")
        else:
            self.console.print(content, markup=False)
        return 0

    async def history_compare(self, args) -> int:
        result = await self.history.compare_records(args.ids)
        comparison = result.comparison

        table = Table(title="候选人对比")
        table.add_column("维度", style="cyan")
        for name in comparison.candidates:
            table.add_column(name, style="white")
        table.add_row("职位", *comparison.positions)
        table.add_row("综合评分", *(str(r) for r in comparison.ratings))
        table.add_row("置信度", *(str(c) for c in comparison.confidences))
        for dimension, scores in comparison.dimensions.items():
            table.add_row(dimension, *(str(s) for s in scores))
        self.console.print(table)
        return 0

    async def history_tag(self, args) -> int:
        if args.remove:
            ok = await self.history.remove_tags(args.id, args.tags)
        else:
            ok = await self.history.add_tags(args.id, args.tags)
        if not ok:
            self.console.print(f"[red]❌ 记录不存在: {args.id}[/red]")
            return 1
        record = await self.history.get_record(args.id)
        self.console.print(f"✅ {record.candidate_name}: {', '.join(record.tags) or '(无标签)'}")
        return 0

    # --- simulate ---

    async def simulate(self, args) -> int:
        simulator = InterviewSimulator(self.interviewer, self.candidate, history_service=self.history)
        config = SimulationConfig(
            jd=self._read_optional(args.jd),
            resume=self._read_optional(args.resume),
            transcript=self._read_optional(args.transcript) or None,
            max_turns=args.max_turns or self.config.evaluation.max_turns,
        )

        def on_message(message: ConversationMessage) -> None:
            if args.stream:
                return
            speaker = "面试官" if message.role == "interviewer" else "候选人"
            self.console.print(f"[bold]{speaker}[/bold] (第{message.turn}轮): {message.content}\n")

        def on_chunk(content: str, is_complete: bool) -> None:
            self.console.print(content, end="", markup=False)
            if is_complete:
                self.console.print("\n")

        self.console.print("\n[bold green]🎬 模拟面试开始[/bold green]\n")
        try:
            if args.stream:
                result = await simulator.run_streaming(
                    config, on_interviewer_chunk=on_chunk, on_candidate_chunk=on_chunk, on_message=on_message
                )
            else:
                result = await simulator.run(config, on_message=on_message)
        except KeyboardInterrupt:
            simulator.stop()
            raise

        if result.status == "error":
            self.console.print(f"[red]❌ 模拟失败: {result.error}[/red]")
            return 1

        self.console.print(
            f"[green]✅ 模拟完成[/green] 轮数: {result.metadata.total_turns} "
            f"面试官结束: {'是' if result.metadata.ended_by_interviewer else '否'}"
        )
        if result.error:
            self.console.print(f"[yellow]⚠️ {result.error}[/yellow]")
        output = self.config.storage.export_dir / f"{result.session_id}.json"
        output.write_text(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2), encoding="utf-8")
        self.console.print(f"📄 对话已保存: [green]{output}[/green]")
        return 0

    # --- helpers ---

    @staticmethod
    def _read_optional(path) -> str:
        return Path(path).read_text(encoding="utf-8") if path else ""

    def _print_files(self, files) -> None:
        table = Table(title="可选文件")
        table.add_column("No", style="cyan")
        table.add_column("文件名", style="white")
        table.add_column("候选人")
        table.add_column("职位")
        table.add_column("上传时间", style="dim")
        for i, f in enumerate(files, 1):
            table.add_row(
                str(i),
                f.name,
                f.metadata.candidate_name or "-",
                f.metadata.position or "-",
                f.uploaded_at.strftime("%Y-%m-%d %H:%M"),
            )
        self.console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="面试评估系统: 主题分析、能力评估、批量处理与面试历史",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  python main.py check
  python main.py upload data/张三_ATL_1.txt --type conversation
  python main.py evaluate transcript.txt --jd jd.txt --resume resume.txt --save
  python main.py batch --search ATL --concurrency 3 --export csv
  python main.py history list --tag auto-saved
  python main.py history compare history_1 history_2
  python main.py simulate --jd jd.txt --resume resume.txt --max-turns 10
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="显示配置并检查后端连接")
    check.set_defaults(handler=InterviewEvalApp.check)

    upload = subparsers.add_parser("upload", help="上传 JD、简历或面试记录文件")
    upload.add_argument("paths", nargs="+", help="文件路径")
    upload.add_argument("--type", choices=[t.value for t in FileType], default=FileType.CONVERSATION.value)
    upload.add_argument("--no-validate", action="store_true", help="跳过内容校验")
    upload.set_defaults(handler=InterviewEvalApp.upload)

    evaluate = subparsers.add_parser("evaluate", help="评估一份面试记录")
    evaluate.add_argument("transcript", help="面试记录文件")
    evaluate.add_argument("--jd", help="职位描述文件")
    evaluate.add_argument("--resume", help="简历文件")
    evaluate.add_argument("--previous-summary", help="一面总结文件 (二面评估时使用)")
    evaluate.add_argument("--step", choices=[s.value for s in EvaluationStep], default=EvaluationStep.ALL.value)
    evaluate.add_argument("--stage", choices=["1", "2"], default=None)
    evaluate.add_argument("--save", action="store_true", help="保存到面试历史")
    evaluate.add_argument("--tags", nargs="*", help="历史记录标签")
    evaluate.set_defaults(handler=InterviewEvalApp.evaluate)

    batch = subparsers.add_parser("batch", help="批量评估已上传的面试记录")
    batch.add_argument("--search", help="按文件名、内容、候选人或职位搜索")
    batch.add_argument("--jd", help="按职位筛选")
    batch.add_argument("--candidate", help="按候选人筛选")
    batch.add_argument("--select", metavar="INDICES", help="按序号选择, 例如 '1,3,5-8' 或 'all'")
    batch.add_argument("--step", choices=[s.value for s in EvaluationStep], default=EvaluationStep.ALL.value)
    batch.add_argument("--stage", choices=["1", "2"], default=None)
    batch.add_argument("--concurrency", type=int, default=None)
    batch.add_argument("--export", choices=EXPORT_FORMATS, help="导出批次结果")
    batch.set_defaults(handler=InterviewEvalApp.batch)

    history = subparsers.add_parser("history", help="面试历史记录")
    history_commands = history.add_subparsers(dest="history_command", required=True)

    history_list = history_commands.add_parser("list", help="列出历史记录")
    history_list.add_argument("--search")
    history_list.add_argument("--tag", action="append")
    history_list.set_defaults(handler=InterviewEvalApp.history_list)

    history_stats = history_commands.add_parser("stats", help="历史统计")
    history_stats.set_defaults(handler=InterviewEvalApp.history_stats)

    history_export = history_commands.add_parser("export", help="导出历史记录")
    history_export.add_argument("--format", choices=EXPORT_FORMATS, default="json")
    history_export.add_argument("--search")
    history_export.add_argument("--output", "-o")
    history_export.set_defaults(handler=InterviewEvalApp.history_export)

    history_compare = history_commands.add_parser("compare", help="对比多个候选人")
    history_compare.add_argument("ids", nargs="+")
    history_compare.set_defaults(handler=InterviewEvalApp.history_compare)

    history_tag = history_commands.add_parser("tag", help="添加或移除标签")
    history_tag.add_argument("id")
    history_tag.add_argument("tags", nargs="+")
    history_tag.add_argument("--remove", action="store_true")
    history_tag.set_defaults(handler=InterviewEvalApp.history_tag)

    simulate = subparsers.add_parser("simulate", help="运行一次模拟面试")
    simulate.add_argument("--jd", required=True, help="职位描述文件")
    simulate.add_argument("--resume", required=True, help="简历文件")
    simulate.add_argument("--transcript", help="参考面试记录文件")
    simulate.add_argument("--max-turns", type=int, default=None)
    simulate.add_argument("--stream", action="store_true", help="流式输出")
    simulate.set_defaults(handler=InterviewEvalApp.simulate)

    return parser


def main():
    """Program entry point"""
    args = build_parser().parse_args()
    config = load_config()
    app = InterviewEvalApp(config)
    logger.debug(f"Command '{args.command}' started at {datetime.now():%H:%M:%S}")

    try:
        exit_code = asyncio.run(app.run(args))
    except KeyboardInterrupt:
        console.print("\n\n[yellow]程序已退出。[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red]严重错误: {str(e)}[/red]")
        logger.exception("Critical error")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

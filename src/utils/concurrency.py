"""提供“同时发出、全部等待”的线程并发工具。"""  # 模块文档字符串。
# 导入 concurrent.futures 以使用线程池执行器。
import concurrent.futures  # noqa: ICN001
# 导入 typing 以注解函数签名。
from typing import Any, Callable, List, Sequence, Tuple

# 定义聚合异常，在多个任务失败时保留全部异常供调试。
class TaskGroupError(Exception):
    """至少一个并发任务失败时抛出，first 为按提交顺序的首个异常。"""  # 类说明。

    def __init__(self, errors: List[Tuple[str, BaseException]]):
        """保存 (任务名, 异常) 列表。"""  # 方法说明。
        super().__init__("; ".join(f"{name}: {exc}" for name, exc in errors))
        self.errors = errors  # 保存所有失败任务及其异常。
        self.first = errors[0][1]  # 首个失败异常，调用方通常只关心它。

# 定义并发运行函数，所有任务提交后统一等待。
def run_all(
    tasks: Sequence[Tuple[str, Callable[[], Any]]],
    *,
    max_workers: int | None = None,
) -> List[Any]:
    """并发执行无参可调用对象，等待全部完成后按提交顺序返回结果。

    任务之间互不等待；即便某个任务失败，其余任务也会执行到结束。
    只要存在失败就抛出 TaskGroupError，不返回部分结果。
    """  # 函数说明。
    if not tasks:
        return []
    workers = max_workers or len(tasks)  # 默认每个任务一个线程。
    results: List[Any] = [None] * len(tasks)
    errors: List[Tuple[int, str, BaseException]] = []
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        # 先一次性提交全部任务，再统一等待。
        futures = {executor.submit(func): (index, name) for index, (name, func) in enumerate(tasks)}
        for future in concurrent.futures.as_completed(futures):
            index, name = futures[future]
            try:
                results[index] = future.result()
            except Exception as exc:  # noqa: BLE001
                errors.append((index, name, exc))
    if errors:
        errors.sort(key=lambda item: item[0])  # 按提交顺序排列，保证 first 稳定。
        raise TaskGroupError([(name, exc) for _, name, exc in errors])
    return results

"""
cfquery actors
A pykka actor owns a dataset and evaluates queries for any number of callers
"""

from typing import Any, Dict, Iterable, List, Optional
import numpy as np
import pykka

from dataset import Dataset
from error_handling import QueryError
from query import Query


class QueryActor(pykka.ThreadingActor):
  """Actor serialising the evaluation of queries against one dataset"""

  def __init__(self, dataset: Dataset, units_path: Optional[str] = None, debug: bool = False):
    super().__init__()
    self.dataset = dataset
    self.query = Query(units_path)
    self.debug = debug

  def evaluate(self, text: str, unit: str = "") -> np.ndarray:
    """Evaluate one expression; called through the actor proxy"""
    return self.query.evaluate(self.dataset, text, unit, self.debug)

  def on_receive(self, message: Dict[str, Any]) -> np.ndarray:
    """Handle {'query': text, 'unit': unit} messages sent with ask()"""
    try:
      text = message['query']
    except (KeyError, TypeError):
      raise QueryError(f"unsupported message: {message!r}") from None
    return self.evaluate(text, message.get('unit', ""))


def evaluate_all(dataset: Dataset, texts: Iterable[str], unit: str = "",
                 units_path: Optional[str] = None) -> List[np.ndarray]:
  """Evaluate every query on one actor, results in submission order"""
  actor_ref = QueryActor.start(dataset, units_path)
  try:
    actor = actor_ref.proxy()
    futures = [actor.evaluate(text, unit) for text in texts]
    return [future.get() for future in futures]
  finally:
    actor_ref.stop()

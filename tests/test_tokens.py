import tiktoken

from jobmail.core.tokens import TokenEstimator, encoding_name_for, heuristic_tokens


def _broken(*_args, **_kwargs):
    raise RuntimeError("tokenizer files unavailable")


def test_heuristic_is_ceil_of_quarter_length():
    assert heuristic_tokens("") == 0
    assert heuristic_tokens("abcd") == 1
    assert heuristic_tokens("abcde") == 2


def test_falls_back_when_tokenizer_cannot_load(monkeypatch):
    monkeypatch.setattr(tiktoken, "encoding_for_model", _broken)
    monkeypatch.setattr(tiktoken, "get_encoding", _broken)
    est = TokenEstimator()
    assert est.estimate("abcdefghi", "gpt-4o-mini") == 3
    assert est.estimate("", "gpt-4o-mini") == 0


def test_unknown_model_uses_prefix_encoding(monkeypatch):
    requested = []

    def unknown_model(model):
        raise KeyError(model)

    class WordEncoder:
        def encode(self, text, disallowed_special=()):
            return text.split()

    def get_encoding(name):
        requested.append(name)
        return WordEncoder()

    monkeypatch.setattr(tiktoken, "encoding_for_model", unknown_model)
    monkeypatch.setattr(tiktoken, "get_encoding", get_encoding)
    est = TokenEstimator()
    assert est.estimate("one two three", "gpt-4o-2099-01-01") == 3
    assert est.estimate("four five", "gpt-4o-2099-01-01") == 2
    assert requested == ["o200k_base"]


def test_encode_failure_falls_back(monkeypatch):
    class Exploding:
        def encode(self, text, disallowed_special=()):
            raise ValueError("bad input")

    monkeypatch.setattr(tiktoken, "encoding_for_model", lambda model: Exploding())
    assert TokenEstimator().estimate("12345678", "gpt-4o") == 2


def test_encoding_names_by_prefix():
    assert encoding_name_for("gpt-4o-mini") == "o200k_base"
    assert encoding_name_for("gpt-4-0613") == "cl100k_base"
    assert encoding_name_for("gpt-3.5-turbo") == "cl100k_base"
    assert encoding_name_for("mystery-model") == "o200k_base"

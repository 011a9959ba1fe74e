from namegen.cache.keys import cancel_key, combined_key, normalize_description, normalize_models, per_model_key


def test_combined_key_ignores_model_order_and_duplicates():
  first = combined_key("Artisanal coffee roastery", "creative", False, ["gpt-4o", "claude-3.5-sonnet"])
  second = combined_key("Artisanal coffee roastery", "creative", False, ["claude-3.5-sonnet", "gpt-4o", "gpt-4o"])
  assert first == second
  assert first.startswith("combined:")


def test_combined_key_normalizes_description_whitespace_and_case():
  first = combined_key("  Artisanal   coffee\nroastery ", "creative", False, ["gpt-4o"])
  second = combined_key("artisanal coffee roastery", "creative", False, ["gpt-4o"])
  assert first == second


def test_combined_key_distinguishes_mode_deep_thinking_and_models():
  base = combined_key("coffee", "creative", False, ["gpt-4o"])
  assert combined_key("coffee", "professional", False, ["gpt-4o"]) != base
  assert combined_key("coffee", "creative", True, ["gpt-4o"]) != base
  assert combined_key("coffee", "creative", False, ["gpt-4o", "grok-beta"]) != base


def test_normalizers():
  assert normalize_description("  Tea\t House  ") == "tea house"
  assert normalize_models(["b", "a", "b", " ", "a"]) == ["a", "b"]


def test_session_scoped_keys():
  assert per_model_key("session_1", "gpt-4o") == "per-model:session_1:gpt-4o"
  assert cancel_key("session_1") == "cancel:session_1"

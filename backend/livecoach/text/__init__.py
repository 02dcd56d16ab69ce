from livecoach.text.similarity import is_contained, normalize_text, text_similarity, token_similarity

__all__ = ["is_contained", "normalize_text", "text_similarity", "token_similarity"]

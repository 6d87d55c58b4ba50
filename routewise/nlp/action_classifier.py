"""Bag-of-words fallback classifier for intent actions.

Intent classification logic:
- scikit-learn `CountVectorizer` + `MultinomialNB` (Laplace smoothing).
- Trained once from `CLASSIFIER_SEED_DOCUMENTS` at construction time.
- Consulted only when no action keyword pattern matched.

Parsing and normalization:
- Documents and inputs share `vocabulary.tokenize`, so single-letter tokens
  count the same way at training and prediction time.
- Tokens outside the training vocabulary are ignored.

Determinism:
- Fully deterministic. Score ties resolve to the alphabetically first label
  (`MultinomialNB.classes_` is sorted).

Failure handling:
- No known tokens -> `None`; the caller falls back to `query`.
"""

from sklearn.feature_extraction.text import CountVectorizer
from sklearn.naive_bayes import MultinomialNB

from routewise.nlp.vocabulary import CLASSIFIER_SEED_DOCUMENTS, tokenize


class BagOfWordsClassifier:
    """Multinomial naive Bayes classifier over word tokens."""

    def __init__(self, documents=None, alpha: float = 1.0):
        documents = list(documents or CLASSIFIER_SEED_DOCUMENTS)
        if not documents:
            raise ValueError("Classifier requires at least one training document")

        self.vectorizer = CountVectorizer(tokenizer=tokenize, token_pattern=None, lowercase=True)
        self.model = MultinomialNB(alpha=alpha)

        texts = [text for text, _ in documents]
        labels = [label for _, label in documents]
        self.model.fit(self.vectorizer.fit_transform(texts), labels)

    @property
    def labels(self) -> list[str]:
        return [str(label) for label in self.model.classes_]

    def classify(self, tokens: list[str]) -> str | None:
        """Return the most probable label, or `None` when no token is known."""
        row = self.vectorizer.transform([" ".join(tokens)])
        if row.nnz == 0:
            return None
        return str(self.model.predict(row)[0])

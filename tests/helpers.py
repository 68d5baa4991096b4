from assessments.answers import FreeText, MultiChoice, SingleChoice


def correct_option(question):
    return str(question.options.get(is_correct=True).pk)


def wrong_option(question):
    return str(question.options.filter(is_correct=False).first().pk)


def pick(question, correct=True):
    return SingleChoice(correct_option(question) if correct else wrong_option(question))


def pick_all(question):
    return MultiChoice(tuple(sorted(str(o.pk) for o in question.options.filter(is_correct=True))))


def write(text):
    return FreeText(text)

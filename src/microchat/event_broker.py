from microchat.longpoll.broker import LongpollBroker
from microchat.settings import settings

broker = LongpollBroker(settings.longpoll_options())


def get_broker() -> LongpollBroker:
    return broker

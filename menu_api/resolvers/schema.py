import strawberry
from strawberry.fastapi import GraphQLRouter

from menu_api.resolvers.context import get_context
from menu_api.resolvers.mutation import Mutation
from menu_api.resolvers.query import Query

schema = strawberry.Schema(query=Query, mutation=Mutation)


def build_graphql_router() -> GraphQLRouter:
    return GraphQLRouter(schema, context_getter=get_context)

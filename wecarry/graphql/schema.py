import strawberry

from wecarry.graphql.resolvers import Mutation, Query

schema = strawberry.Schema(query=Query, mutation=Mutation)
